import socket
import threading
import time

import pytest

from proxytweak.cli import build_parser, main, serve
from proxytweak.config import Config, PeerMethod
from proxytweak.server import RESPONSE_ERR


def _free_port():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


def _connect_with_retry(port, deadline=5.0):
    end = time.monotonic() + deadline
    while True:
        try:
            return socket.create_connection(("127.0.0.1", port), timeout=5)
        except OSError:
            if time.monotonic() > end:
                raise
            time.sleep(0.05)


def test_parser_defaults_match_config():
    args = build_parser().parse_args([])
    defaults = Config()
    assert args.listen_port == defaults.listen_port == 8888
    assert args.peer_host == "127.0.0.1"
    assert args.peer_port == defaults.peer_port
    assert args.methods == PeerMethod.ALL
    assert args.bypass_worker is True
    assert args.peer_tls is False


def test_parser_reads_methods_and_flags():
    args = build_parser().parse_args(
        ["--methods", "get,head", "--peer-tls", "--no-bypass-worker", "--peer-port", "443"]
    )
    assert args.methods == PeerMethod.GET | PeerMethod.HEAD
    assert args.peer_tls is True
    assert args.bypass_worker is False
    assert args.peer_port == 443


def test_unknown_method_is_a_usage_error():
    with pytest.raises(SystemExit) as excinfo:
        main(["--methods", "BOGUS"])
    assert excinfo.value.code == 2


def test_main_fails_without_certificates(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert main([]) == 1


def test_serve_answers_clients():
    port = _free_port()
    config = Config(listen_addr="127.0.0.1", listen_port=port)
    thread = threading.Thread(target=serve, args=(config, None), daemon=True)
    thread.start()
    with _connect_with_retry(port) as client:
        client.sendall(b"CONNECT example.com:0 HTTP/1.1\r\n\r\n")
        data = b""
        while len(data) < len(RESPONSE_ERR):
            chunk = client.recv(len(RESPONSE_ERR) - len(data))
            if not chunk:
                break
            data += chunk
    assert data == RESPONSE_ERR
    assert thread.is_alive()