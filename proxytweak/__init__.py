"""Local HTTP/HTTPS proxy that rewrites requests for an upstream peer."""

__version__ = "0.1.0"