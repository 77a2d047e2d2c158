"""Outgoing connections to the configured peer."""

from __future__ import annotations

import socket


def connect_remote_server(host: str, port: int) -> socket.socket:
    """Open a TCP connection to the peer at host:port over IPv4."""
    try:
        address = socket.gethostbyname(host)
    except OSError as exc:
        raise OSError(
            "Can't resolve host to address. Check network connection."
        ) from exc

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((address, port))
    except OSError:
        sock.close()
        raise
    return sock