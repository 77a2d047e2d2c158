"""Parsing and rewriting of proxied HTTP requests."""

from __future__ import annotations

import re
from dataclasses import dataclass

from proxytweak.config import HTTP_PROTO, Config, PeerMethod

HTTPS_PROTO = "https://"
PROTO_SEPARATOR = "://"

REQUEST_MAX = 16384
RESPONSE_MAX = 16384
HOST_MAX = 64

PORT_MAX = 49150
PORT_MAX_STR = 6

_HEADER_END = "\r\n\r\n"
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class RequestError(ValueError):
    """A request could not be parsed or rewritten."""


@dataclass
class Request:
    """The parts of a client request needed to rebuild it."""

    method: str
    path: str
    host: str
    header1: str
    header2: str | None = None
    payload: bytes = b""


def _strtok(text: str, pos: int, delims: str) -> tuple[str, int, int] | None:
    """Next token of text from pos, skipping leading delimiters.

    Returns the token, the position after its terminating delimiter and the
    number of characters the token consumed (including the delimiter).
    """
    cls = re.escape(delims)
    match = re.compile(f"[{cls}]*([^{cls}]+)").match(text, pos)
    if match is None:
        return None
    end = match.end()
    following = end + 1 if end < len(text) else end
    return match.group(1), following, following - match.start(1)


def parse_connect_request(request: bytes) -> tuple[str, int]:
    """Extract host and port from a CONNECT request line."""
    text = request.decode("latin-1")
    first = _strtok(text, 0, " ")
    if first is None:
        raise RequestError("empty CONNECT request")
    host_tok = _strtok(text, first[1], ":")
    if host_tok is None:
        raise RequestError("missing host in CONNECT request")
    host, pos, span = host_tok
    if span > HOST_MAX - 1:
        raise RequestError("host name too long")
    port_tok = _strtok(text, pos, " ")
    if port_tok is None:
        raise RequestError("missing port in CONNECT request")
    port_text, _, span = port_tok
    if span > PORT_MAX_STR:
        raise RequestError("port too long")
    match = _LEADING_INT.match(port_text)
    port = int(match.group(1)) if match else 0
    if port <= 0 or port > PORT_MAX:
        raise RequestError(f"invalid port: {port_text!r}")
    return host, port


def parse_request(data: bytes, https_mode: bool) -> Request:
    """Split a raw request into method, path, host, headers and payload."""
    text = data.decode("latin-1")
    end = text.find(_HEADER_END)
    if end < 0:
        raise RequestError("incomplete request header")
    payload = data[end + len(_HEADER_END):]

    method_tok = _strtok(text, 0, " ")
    if method_tok is None:
        raise RequestError("missing method")
    method, pos, _ = method_tok
    path_tok = _strtok(text, pos, " ")
    if path_tok is None:
        raise RequestError("missing path")
    path, pos, _ = path_tok
    if not https_mode:
        if len(path) < len(HTTP_PROTO):
            raise RequestError("malformed absolute URL")
        rest = path[len(HTTP_PROTO):]
        slash = rest.find("/")
        if slash < 0:
            raise RequestError("URL has no path")
        path = rest[slash:]
    version_tok = _strtok(text, pos, "\n")
    if version_tok is None:
        raise RequestError("missing protocol version")
    pos = version_tok[1]

    if text.startswith("Host: ", pos):
        header2 = None
        host_tok = _strtok(text, pos + len("Host: "), "\r")
    else:
        marker = text.find("\r\nHost: ", pos)
        if marker < 0:
            raise RequestError("missing Host header")
        header2 = text[pos:marker]
        host_tok = _strtok(text, marker + len("\r\nHost: "), "\r")
    if host_tok is None:
        raise RequestError("empty Host header")
    host, pos, _ = host_tok
    pos = min(pos + 1, len(text))

    terminator = text.find(_HEADER_END, pos)
    if terminator < 0:
        header1 = header2 if header2 is not None else ""
        header2 = None
    else:
        header1 = text[pos:terminator]
    return Request(method, path, host, header1, header2, payload)


def _bypassed(method: str, methods: PeerMethod) -> bool:
    initial = method[:1]
    return (
        (bool(methods & PeerMethod.GET) and initial == "G")
        or (bool(methods & PeerMethod.POST) and initial == "P")
        or (bool(methods & PeerMethod.HEAD) and initial == "H")
    )


def transform_request(
    data: bytes, https_mode: bool, config: Config
) -> tuple[bytes, bytes]:
    """Rewrite a client request for the peer.

    Returns the rewritten header block and the payload that followed the
    original header.
    """
    if not data or len(data) > REQUEST_MAX:
        raise RequestError("invalid input")
    req = parse_request(data, https_mode)

    with_header2 = req.header2 is not None
    bypassed = (
        not https_mode
        and config.bypass_worker_for_http()
        and _bypassed(req.method, config.peer_methods)
    )
    if bypassed:
        template = config.bypass_format(with_header2)
    else:
        template = config.worker_format(with_header2)

    keeps_method = bool(config.peer_methods & PeerMethod.POST)
    out = template.format(
        method=req.method if keeps_method else "GET",
        host=req.host,
        path=req.path,
        header1=req.header1,
        header2=req.header2 or "",
        mymethod=req.method,
    )
    if len(out) >= REQUEST_MAX:
        raise RequestError("output overflow")

    if not bypassed and not https_mode:
        marker = out.find("/proxs/")
        if marker < 0:
            raise RequestError("can't change /proxs/ to /proxh/")
        out = out[:marker] + "/proxh/" + out[marker + len("/proxs/"):]
    return out.encode("latin-1"), req.payload


def http_bare_url(request: str) -> str | None:
    """URL of the request line without its scheme, or None if absent."""
    start = request.find(PROTO_SEPARATOR)
    if start < 0:
        return None
    token = _strtok(request, start + len(PROTO_SEPARATOR), " ")
    return token[0] if token else None