# proxytweak

A small local proxy. Clients talk to it as an ordinary HTTP proxy; it
rewrites each request and forwards it to a configured peer, which may be a
plain HTTP proxy or a web worker that expects requests under `/proxs/`
(HTTPS) and `/proxh/` (HTTP) paths.

## What it does with a connection

Each accepted client is served on its own thread.

- **Plain HTTP** (`GET http://host/path HTTP/1.1 ...`): the request line and
  `Host` header are rebuilt. By default the request is sent to the worker as
  `METHOD http://<worker-host>/proxh/<host><path>` with the `Host` header set
  to the custom host. When worker bypass is on, the peer is not a cloudflare
  worker, and the method starts with `G`, `P` or `H` and its GET/POST/HEAD
  flag is among the allowed methods, the request is instead sent as
  `METHOD http://<host><path>` straight to the peer. If POST is not among the
  allowed methods, the request is sent as `GET` with the original method in a
  `mymethod:` header. Any body bytes that arrived with the header follow it.
- **CONNECT**: when `CONNECT` is among the allowed methods (it is by
  default), the proxy opens a connection to the peer, sends
  `CONNECT host:port HTTP/1.1` with `Host: <connect-host>`, and then relays
  bytes both ways. Otherwise the client is answered with `200 OK`, a TLS
  handshake is run with it using the local certificate, and the decrypted
  requests are rewritten for the worker under `/proxs/`.
- After each rewritten request, the first data from the peer is checked; a
  `HTTP/1.1 101 ` response (WebSocket upgrade) switches the session to a
  plain two-way byte relay.
- Malformed requests get `HTTP/1.1 400 Bad request`.

When the allowed methods are only `CONNECT`, plain HTTP clients are
disconnected.

## Installation

```
pip install .
```

## Certificates

At start-up the proxy needs `selfsign.crt` and `selfsign.key`. They are
looked up in the current directory first; if neither is readable there, in
`$HOME/.config/proxytweak/` (on Linux). The proxy exits with status 1 if the
files cannot be found or loaded. Connections to the peer over TLS are
verified against `/etc/ssl/certs/ca-certificates.crt`, or the system's
default certificates if that file is unavailable; the peer's host name is
not checked.

## Running

```
proxytweak
```

By default it listens on `0.0.0.0:8888` and forwards to a peer at
`127.0.0.1:8080` without TLS, with all methods allowed.

Options:

| Option | Meaning |
| --- | --- |
| `--listen-addr`, `--listen-port` | address and port to listen on |
| `--peer-host`, `--peer-port` | the peer to forward to |
| `--peer-tls` / `--no-peer-tls` | use TLS towards the peer |
| `--cloudflare` / `--no-cloudflare` | the peer is a cloudflare worker |
| `--bypass-worker` / `--no-bypass-worker` | send plain HTTP requests straight to the peer |
| `--worker-host` | worker host name (default `router.eroken.workers.dev`) |
| `--custom-host` | `Host` header sent to the peer (default `host.net:443`) |
| `--connect-host` | `Host` header of CONNECT requests to the peer (default `connect.host.net:443`) |
| `--methods` | comma separated allowed methods: `GET,POST,HEAD,CONNECT,ALL` |
| `-v`, `--verbose` | log requests and rewritten requests |

Settings that do not fit together (for example port 443 without TLS) are
logged as warnings at start-up.

Point a client at it:

```
https_proxy="http://127.0.0.1:8888" curl https://example.com
```

## Library use

- `proxytweak.config.Config` holds the listen and peer settings and builds
  the request templates (`worker_format`, `bypass_format`,
  `connect_request`); `Config.warnings()` lists settings likely to be wrong.
  `PeerMethod` is the flag set of allowed methods.
- `proxytweak.http.parse_connect_request`, `parse_request`,
  `transform_request` and `http_bare_url` parse and rewrite proxy requests,
  raising `RequestError` on malformed input.
- `proxytweak.tls.find_certificates` and `init_tls_helper` locate the
  certificate and build a `TlsHelper` with `accept` and `connect`.
- `proxytweak.sockets.connect_remote_server` opens the connection to the peer.
- `proxytweak.server.serve_client` handles one accepted connection;
  `proxy`, `proxy_connect` and `bridge` are the session pieces it uses.
- `proxytweak.cli.serve` runs the accept loop and `main` is the command.

## Limitations

- Settings come from the command line only; there is no configuration file.
- No certificate is generated; the self-signed pair must be provided.
- Only the first read after each response is rewritten; a request header
  that arrives split over several reads is not reassembled.
- Responses from the peer are passed through unchanged.

## Tests

```
pip install .[test]
pytest
```