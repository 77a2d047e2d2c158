"""TLS contexts for the local listener and the remote peer."""

from __future__ import annotations

import os
import ssl
import socket
import sys
from dataclasses import dataclass
from pathlib import Path

PROGRAM_NAME = "proxytweak"
SSL_CERT_FILE = "selfsign.crt"
SSL_KEY_FILE = "selfsign.key"
CA_BUNDLE = "/etc/ssl/certs/ca-certificates.crt"


class TlsError(Exception):
    """TLS could not be set up or a handshake failed."""


def _readable(path: str | os.PathLike[str]) -> bool:
    return os.access(path, os.R_OK)


def find_certificates(
    cert_name: str = SSL_CERT_FILE,
    key_name: str = SSL_KEY_FILE,
    home: str | os.PathLike[str] | None = None,
) -> tuple[str, str]:
    """Locate the certificate and key used by the local TLS listener.

    The current directory is tried first; if neither file is readable there,
    ``<home>/.config/proxytweak/`` is tried.  Without an explicit ``home`` the
    fallback uses ``$HOME`` on Linux only.
    """
    cert, key = cert_name, key_name
    if _readable(cert) or _readable(key):
        return cert, key

    if home is None and sys.platform.startswith("linux"):
        home = os.environ.get("HOME")
    if home is None:
        raise TlsError(
            "Fail to initialize SSL. Check certificates in paths "
            f"ssl_cert path: {cert} ssl_key path: {key}"
        )

    base = Path(home) / ".config" / PROGRAM_NAME
    cert, key = str(base / cert_name), str(base / key_name)
    if not _readable(cert) and not _readable(key):
        raise TlsError(
            "Fail to initialize SSL. Check certificates in paths "
            f"ssl_cert path: {cert} ssl_key path: {key}"
        )
    return cert, key


def _server_context(cert: str, key: str) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    try:
        # load_cert_chain also checks that the key matches the certificate.
        context.load_cert_chain(cert, key)
    except (ssl.SSLError, OSError) as exc:
        raise TlsError(f"can't load certificate {cert} / key {key}: {exc}") from exc
    return context


def _client_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    # The peer's chain is verified; its host name is not.
    context.check_hostname = False
    context.verify_mode = ssl.CERT_REQUIRED
    try:
        context.load_verify_locations(CA_BUNDLE)
    except (ssl.SSLError, OSError):
        context.load_default_certs(ssl.Purpose.SERVER_AUTH)
    return context


@dataclass
class TlsHelper:
    """Server and client TLS contexts with handshake helpers."""

    server_context: ssl.SSLContext | None = None
    client_context: ssl.SSLContext | None = None

    def accept(self, sock: socket.socket) -> ssl.SSLSocket:
        """Run the server side handshake on an accepted client socket."""
        if self.server_context is None:
            raise TlsError("server TLS context is not initialised")
        try:
            return self.server_context.wrap_socket(sock, server_side=True)
        except (ssl.SSLError, OSError) as exc:
            raise TlsError(f"TLS accept failed: {exc}") from exc

    def connect(self, sock: socket.socket, server_hostname: str) -> ssl.SSLSocket:
        """Run the client side handshake with the peer, sending SNI."""
        if self.client_context is None:
            raise TlsError("client TLS context is not initialised")
        try:
            tls_sock = self.client_context.wrap_socket(
                sock, server_hostname=server_hostname
            )
        except ssl.SSLCertVerificationError as exc:
            raise TlsError(f"verify remote peer's certificate error: {exc}") from exc
        except (ssl.SSLError, OSError) as exc:
            raise TlsError(f"TLS connect failed: {exc}") from exc
        if tls_sock.getpeercert(binary_form=True) is None:
            tls_sock.close()
            raise TlsError("no remote peer's certificate")
        return tls_sock


def init_tls_helper(home: str | os.PathLike[str] | None = None) -> TlsHelper:
    """Find the local certificate and build both TLS contexts."""
    cert, key = find_certificates(home=home)
    return TlsHelper(
        server_context=_server_context(cert, key),
        client_context=_client_context(),
    )