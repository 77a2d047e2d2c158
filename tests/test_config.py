import pytest

from proxytweak.config import Config, PeerMethod


def test_defaults_have_no_warnings():
    assert Config().warnings() == []


def test_zero_methods_rejected():
    with pytest.raises(ValueError):
        Config(peer_methods=0)


def test_int_methods_become_flags():
    cfg = Config(peer_methods=0x05)
    assert cfg.peer_methods == PeerMethod.GET | PeerMethod.HEAD


def test_custom_host_default_and_cloudflare():
    assert Config().custom_host == "host.net:443"
    cfg = Config(peer_type_cloudflare=True, worker_host="w.example.com")
    assert cfg.custom_host == "w.example.com"


def test_bypass_rules():
    assert Config().bypass_worker_for_http() is True
    assert Config(bypass_worker=False).bypass_worker_for_http() is False
    assert Config(peer_type_cloudflare=True).bypass_worker_for_http() is False
    assert (
        Config(peer_methods=PeerMethod.CONNECT).bypass_worker_for_http() is False
    )


def test_bypass_format_raises_when_disabled():
    with pytest.raises(ValueError):
        Config(bypass_worker=False).bypass_format(True)


def test_worker_format_renders_fields():
    template = Config().worker_format(False)
    out = template.format(
        method="GET", host="example.com", path="/a", header1="Accept: */*"
    )
    assert out.startswith("GET http://router.eroken.workers.dev/proxs/example.com/a ")
    assert "Host: host.net:443\r\n" in out
    assert out.endswith("Accept: */*\r\n\r\n")


def test_worker_format_with_header2_contains_both():
    out = Config().worker_format(True).format(
        method="GET", host="h", path="/", header1="A: 1", header2="B: 2"
    )
    assert out.endswith("A: 1\r\nB: 2\r\n\r\n")


def test_cloudflare_worker_path_is_relative():
    out = Config(peer_type_cloudflare=True).worker_format(False).format(
        method="POST", host="h", path="/p", header1=""
    )
    assert out.startswith("POST /proxs/h/p HTTP/1.1\r\n")


def test_mymethod_line_without_post():
    cfg = Config(peer_methods=PeerMethod.GET | PeerMethod.HEAD)
    out = cfg.worker_format(False).format(
        method="GET", host="h", path="/", header1="A: 1", mymethod="HEAD"
    )
    assert out.endswith("\r\nmymethod: HEAD\r\n\r\n")


def test_braces_in_host_are_literal():
    cfg = Config(peer_custom_host="{odd}")
    out = cfg.bypass_format(False).format(
        method="GET", host="h", path="/", header1=""
    )
    assert "Host: {odd}\r\n" in out


def test_connect_request_wire_format():
    assert Config().connect_request("example.com", 443) == (
        b"CONNECT example.com:443 HTTP/1.1\r\n"
        b"Host: connect.host.net:443\r\n"
        b"User-Agent: native_app/0.00.0\r\n"
        b"Proxy-Connection: Keep-Alive\r\n\r\n"
    )


def test_connect_request_requires_connect_method():
    cfg = Config(peer_methods=PeerMethod.GET | PeerMethod.POST)
    assert cfg.connect_host is None
    with pytest.raises(ValueError):
        cfg.connect_request("example.com", 443)


def test_connect_request_rejects_bad_port():
    with pytest.raises(ValueError):
        Config().connect_request("example.com", 70000)


def test_cloudflare_warnings():
    cfg = Config(peer_type_cloudflare=True, peer_methods=PeerMethod.GET)
    found = cfg.warnings()
    assert "cloudflare supports POST method" in found
    assert "cloudflare should use port 443" in found
    assert any("bypass disabled" in w for w in found)


def test_port_443_without_tls_warns():
    assert "port 443 should use TLS" in Config(peer_port=443).warnings()
    assert Config(peer_port=443, peer_use_tls=True).warnings() == []


def test_connect_only_warns_about_http():
    found = Config(peer_methods=PeerMethod.CONNECT).warnings()
    assert found == ["worker bypass disabled: http not supported"]