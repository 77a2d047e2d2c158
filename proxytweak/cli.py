"""Command line entry point: listen for clients and serve each in a thread."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading

from proxytweak.config import Config, PeerMethod
from proxytweak.server import serve_client
from proxytweak.tls import TlsError, TlsHelper, init_tls_helper

logger = logging.getLogger(__name__)

_BACKLOG = 15


def _methods(text: str) -> PeerMethod:
    flags = PeerMethod(0)
    for name in text.split(","):
        name = name.strip().upper()
        if not name:
            continue
        try:
            flags |= PeerMethod[name]
        except KeyError:
            raise argparse.ArgumentTypeError(f"unknown method: {name}") from None
    if not flags:
        raise argparse.ArgumentTypeError("no known peer method given")
    return flags


def build_parser() -> argparse.ArgumentParser:
    """Command line options, defaulting to the built-in settings."""
    defaults = Config()
    parser = argparse.ArgumentParser(
        prog="proxytweak",
        description="Local HTTP proxy that rewrites requests for a remote peer.",
    )
    parser.add_argument("--listen-addr", default=defaults.listen_addr)
    parser.add_argument("--listen-port", type=int, default=defaults.listen_port)
    parser.add_argument("--peer-host", default=defaults.peer_host)
    parser.add_argument("--peer-port", type=int, default=defaults.peer_port)
    parser.add_argument(
        "--peer-tls",
        action=argparse.BooleanOptionalAction,
        default=defaults.peer_use_tls,
        help="use TLS towards the peer",
    )
    parser.add_argument(
        "--cloudflare",
        action=argparse.BooleanOptionalAction,
        default=defaults.peer_type_cloudflare,
        help="the peer is a cloudflare worker",
    )
    parser.add_argument(
        "--bypass-worker",
        action=argparse.BooleanOptionalAction,
        default=defaults.bypass_worker,
        help="send plain HTTP requests straight to the peer",
    )
    parser.add_argument("--worker-host", default=defaults.worker_host)
    parser.add_argument("--custom-host", default=defaults.peer_custom_host)
    parser.add_argument("--connect-host", default=defaults.peer_connect_custom_host)
    parser.add_argument(
        "--methods",
        type=_methods,
        default=defaults.peer_methods,
        help="comma separated methods allowed for the peer: GET,POST,HEAD,CONNECT,ALL",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _config_from_args(args: argparse.Namespace) -> Config:
    return Config(
        listen_addr=args.listen_addr,
        listen_port=args.listen_port,
        bypass_worker=args.bypass_worker,
        worker_host=args.worker_host,
        peer_host=args.peer_host,
        peer_type_cloudflare=args.cloudflare,
        peer_port=args.peer_port,
        peer_use_tls=args.peer_tls,
        peer_methods=args.methods,
        peer_custom_host=args.custom_host,
        peer_connect_custom_host=args.connect_host,
    )


def _handle(conn: socket.socket, config: Config, tls: TlsHelper | None) -> None:
    with conn:
        serve_client(conn, config, tls)


def serve(config: Config, tls: TlsHelper | None = None) -> None:
    """Accept clients forever, serving each on its own thread."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        listener.bind((config.listen_addr, config.listen_port))
        listener.listen(_BACKLOG)
        print(f"Listening on port {config.listen_port}", file=sys.stderr)
        while True:
            try:
                conn, _ = listener.accept()
            except OSError as exc:
                logger.error("Accept Error: %s", exc)
                continue
            worker = threading.Thread(
                target=_handle, args=(conn, config, tls), daemon=True
            )
            try:
                worker.start()
            except RuntimeError as exc:
                logger.error("thread start error: %s", exc)
                conn.close()


def main(argv: list[str] | None = None) -> int:
    """Run the proxy; returns the process exit status."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        config = _config_from_args(args)
    except ValueError as exc:
        print(f"proxytweak: {exc}", file=sys.stderr)
        return 2
    for warning in config.warnings():
        logger.warning(warning)

    try:
        tls = init_tls_helper()
    except TlsError as exc:
        print(f"proxytweak: {exc}", file=sys.stderr)
        return 1

    try:
        serve(config, tls)
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"proxytweak: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())