"""Proxy settings and the request templates built from them."""

from __future__ import annotations

import enum
from dataclasses import dataclass

HTTP_PROTO = "http://"
PROXS = "/proxs/"

DEFAULT_WORKER_HOST = "router.eroken.workers.dev"
DEFAULT_CUSTOM_HOST = "host.net:443"
DEFAULT_CONNECT_CUSTOM_HOST = "connect.host.net:443"
CONNECT_USER_AGENT = "native_app/0.00.0"


class PeerMethod(enum.IntFlag):
    """HTTP methods the peer is allowed to receive."""

    GET = 0x01
    POST = 0x02
    HEAD = 0x04
    CONNECT = 0x08
    ALL = 0xFF


def _literal(text: str) -> str:
    """Escape text so that str.format leaves it untouched."""
    return text.replace("{", "{{").replace("}", "}}")


@dataclass
class Config:
    """Listening address, peer description and request rewriting options."""

    listen_addr: str = "0.0.0.0"
    listen_port: int = 8888
    bypass_worker: bool = True
    worker_host: str = DEFAULT_WORKER_HOST
    peer_host: str = "127.0.0.1"
    peer_type_cloudflare: bool = False
    peer_port: int = 8080
    peer_use_tls: bool = False
    peer_methods: PeerMethod = PeerMethod.ALL
    peer_custom_host: str | None = None
    peer_connect_custom_host: str = DEFAULT_CONNECT_CUSTOM_HOST

    def __post_init__(self) -> None:
        self.peer_methods = PeerMethod(int(self.peer_methods))
        if not self.peer_methods:
            raise ValueError("no known peer method given")

    @property
    def custom_host(self) -> str:
        """Host header sent to the peer."""
        if self.peer_type_cloudflare:
            return self.worker_host
        if self.peer_custom_host is None:
            return DEFAULT_CUSTOM_HOST
        return self.peer_custom_host

    @property
    def connect_host(self) -> str | None:
        """Host used for custom CONNECT requests, or None if CONNECT is off."""
        if self.peer_methods & PeerMethod.CONNECT:
            return self.peer_connect_custom_host
        return None

    def bypass_worker_for_http(self) -> bool:
        """Whether plain HTTP requests skip the worker and go to the peer."""
        if not self.bypass_worker or self.peer_type_cloudflare:
            return False
        return self.peer_methods != PeerMethod.CONNECT

    def _template(self, pre_path: str, with_header2: bool) -> str:
        head = (
            "{method} "
            + _literal(pre_path)
            + "{host}{path} HTTP/1.1\r\nHost: "
            + _literal(self.custom_host)
            + "\r\n{header1}"
        )
        if self.peer_methods & PeerMethod.POST:
            tail = "\r\n\r\n"
        else:
            tail = "\r\nmymethod: {mymethod}\r\n\r\n"
        middle = "\r\n{header2}" if with_header2 else ""
        return head + middle + tail

    def worker_format(self, with_header2: bool) -> str:
        """Template for a request sent through the worker.

        Fields: method, host, path, header1, header2 and mymethod.
        """
        if self.peer_type_cloudflare:
            pre_path = PROXS
        else:
            pre_path = HTTP_PROTO + self.worker_host + PROXS
        return self._template(pre_path, with_header2)

    def bypass_format(self, with_header2: bool) -> str:
        """Template for a plain HTTP request sent straight to the peer."""
        if not self.bypass_worker_for_http():
            raise ValueError("worker bypass is disabled")
        return self._template(HTTP_PROTO, with_header2)

    def connect_request(self, host: str, port: int) -> bytes:
        """Build the CONNECT request sent to the peer for host:port."""
        connect_host = self.connect_host
        if connect_host is None:
            raise ValueError("CONNECT method is not enabled for the peer")
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port out of range: {port}")
        text = (
            f"CONNECT {host}:{port} HTTP/1.1\r\n"
            f"Host: {connect_host}\r\n"
            f"User-Agent: {CONNECT_USER_AGENT}\r\n"
            "Proxy-Connection: Keep-Alive\r\n\r\n"
        )
        return text.encode("latin-1")

    def warnings(self) -> list[str]:
        """Describe settings that are likely to be wrong."""
        found = []
        methods = self.peer_methods
        if self.peer_type_cloudflare and not methods & PeerMethod.POST:
            found.append("cloudflare supports POST method")
        if self.peer_type_cloudflare and methods & PeerMethod.CONNECT:
            found.append("cloudflare does not support CONNECT method")
        if self.peer_type_cloudflare and self.peer_port != 443:
            found.append("cloudflare should use port 443")
        if self.peer_port == 443 and not self.peer_use_tls:
            found.append("port 443 should use TLS")
        if self.bypass_worker:
            if self.peer_type_cloudflare:
                found.append(
                    "worker bypass disabled: cloudflare is not an http proxy"
                )
            if methods == PeerMethod.CONNECT:
                found.append("worker bypass disabled: http not supported")
        return found