"""Per-client proxy sessions: request rewriting, CONNECT tunnels and relays."""

from __future__ import annotations

import logging
import select
import socket
import ssl

from proxytweak.config import Config, PeerMethod
from proxytweak.http import (
    REQUEST_MAX,
    RequestError,
    parse_connect_request,
    transform_request,
)
from proxytweak.sockets import connect_remote_server
from proxytweak.tls import TlsError, TlsHelper

logger = logging.getLogger(__name__)

RESPONSE_ERR = b"HTTP/1.1 400 Bad request\r\n\r\n"
RESPONSE_OK = b"HTTP/1.1 200 OK\r\n\r\n"

_CONNECT = b"CONNECT"
_WEBSOCKET = b"HTTP/1.1 101 "
_MIN_BUFSIZE = 32


def _wait_readable(socks: list[socket.socket]) -> list[socket.socket]:
    """Block until at least one socket has data, including TLS-buffered data."""
    pending = [s for s in socks if isinstance(s, ssl.SSLSocket) and s.pending()]
    ready, _, _ = select.select(socks, [], [], 0 if pending else None)
    return [s for s in socks if s in pending or s in ready]


def _require_tls(tls: TlsHelper | None) -> TlsHelper:
    if tls is None:
        raise TlsError("TLS is not initialised")
    return tls


def bridge(
    local: socket.socket, remote: socket.socket, bufsize: int = REQUEST_MAX
) -> tuple[int, int]:
    """Relay bytes both ways until either side closes or fails.

    Returns the number of bytes sent to the remote side and to the local side.
    Neither socket is closed.
    """
    if local is remote or bufsize < _MIN_BUFSIZE:
        raise ValueError("bridge sanity checks failed")

    to_remote = 0
    to_local = 0
    try:
        while True:
            ready = _wait_readable([local, remote])
            if local in ready:
                data = local.recv(bufsize)
                if not data:
                    break
                remote.sendall(data)
                to_remote += len(data)
            if remote in ready:
                data = remote.recv(bufsize)
                if not data:
                    break
                local.sendall(data)
                to_local += len(data)
    except OSError as exc:
        logger.error("bridge stopped: %s", exc)
    return to_remote, to_local


def _relay(
    local: socket.socket,
    remote: socket.socket,
    https_mode: bool,
    config: Config,
) -> None:
    """Forward traffic, rewriting the first local read after each response."""
    bufsize = REQUEST_MAX
    transform_next = True
    while True:
        ready = _wait_readable([local, remote])
        if local in ready:
            data = local.recv(bufsize - 1)
            if not data:
                return
            if transform_next:
                logger.debug("Request is\n%s", data.decode("latin-1"))
                try:
                    request, payload = transform_request(data, https_mode, config)
                except RequestError as exc:
                    logger.error("bad request: %s", exc)
                    local.sendall(RESPONSE_ERR)
                    return
                logger.debug("Remote request ==>\n%s", request.decode("latin-1"))
                remote.sendall(request)
                if payload:
                    remote.sendall(payload)
                transform_next = False
            else:
                remote.sendall(data)
        if remote in ready:
            data = remote.recv(bufsize)
            if not data:
                return
            local.sendall(data)
            # Only the first remote read after a rewritten request is a
            # response header worth inspecting.
            if not transform_next:
                transform_next = True
                if data.startswith(_WEBSOCKET):
                    logger.debug("Web socket mode activated")
                    bridge(local, remote, bufsize)
                    return


def proxy(
    conn: socket.socket,
    https_mode: bool,
    config: Config,
    tls: TlsHelper | None = None,
) -> None:
    """Serve one client through the peer, rewriting its requests.

    In HTTPS mode the client is answered with 200 OK and then a TLS
    handshake is run on its connection.  The client connection is always
    closed on return.
    """
    local: socket.socket = conn
    remote: socket.socket | None = None
    try:
        try:
            remote = connect_remote_server(config.peer_host, config.peer_port)
        except OSError as exc:
            logger.error("Connect to remote err: %s", exc)
            return
        if config.peer_use_tls:
            remote = _require_tls(tls).connect(remote, config.custom_host)
        if https_mode:
            conn.sendall(RESPONSE_OK)
            local = _require_tls(tls).accept(conn)
        _relay(local, remote, https_mode, config)
    except (TlsError, OSError) as exc:
        logger.error("proxy session ended: %s", exc)
    finally:
        if local is not conn:
            local.close()
        if remote is not None:
            remote.close()
        conn.close()


def proxy_connect(conn: socket.socket, host: str, port: int, config: Config) -> None:
    """Tunnel the client to host:port through a CONNECT request to the peer.

    The client connection is always closed on return.
    """
    logger.debug("proxy_connect mode")
    try:
        try:
            remote = connect_remote_server(config.peer_host, config.peer_port)
        except OSError as exc:
            logger.error("Connect to remote err: %s", exc)
            conn.sendall(RESPONSE_ERR)
            return
        with remote:
            request = config.connect_request(host, port)
            logger.debug("Custom connect request is\n%s", request.decode("latin-1"))
            remote.sendall(request)
            bridge(conn, remote, REQUEST_MAX)
    except OSError as exc:
        logger.error("tunnel ended: %s", exc)
    finally:
        conn.close()


def serve_client(
    conn: socket.socket, config: Config, tls: TlsHelper | None = None
) -> None:
    """Handle one accepted client connection until its session ends."""
    while True:
        try:
            head = conn.recv(len(_CONNECT), socket.MSG_PEEK)
        except OSError as exc:
            logger.debug("proxy request read error: %s", exc)
            return
        if len(head) != len(_CONNECT):
            return

        if head == _CONNECT:
            try:
                data = conn.recv(REQUEST_MAX)
            except OSError as exc:
                logger.debug("Proxy read request: %s", exc)
                return
            if not data:
                return
            logger.debug("Request is\n%s", data.decode("latin-1"))
            try:
                host, port = parse_connect_request(data)
            except RequestError as exc:
                logger.error("bad CONNECT request: %s", exc)
                try:
                    conn.sendall(RESPONSE_ERR)
                except OSError:
                    return
                continue
            if config.connect_host is not None:
                proxy_connect(conn, host, port, config)
            else:
                proxy(conn, True, config, tls)
        elif config.peer_methods == PeerMethod.CONNECT:
            logger.error("http not supported")
            conn.close()
        else:
            proxy(conn, False, config, tls)
        return