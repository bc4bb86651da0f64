import socket
import threading

import pytest

from tsarkit import nginx
from tsarkit.module import parse_record

NGINX_PAGE = [
    "Active connections: 291 \n",
    "server accepts handled requests\n",
    " 16630948 16630948 31070465 \n",
    "Reading: 6 Writing: 179 Waiting: 106 \n",
]


def test_host_info_defaults():
    info = nginx.host_info({}, "")
    assert info == nginx.HostInfo("127.0.0.1", 80, nginx.DEFAULT_SERVER_NAME, "/nginx_status")


def test_host_info_environment_and_parameter():
    env = {
        "NGX_TSAR_HOST": "10.0.0.1",
        "NGX_TSAR_PORT": "8080",
        "NGX_TSAR_URI": "/status",
        "NGX_TSAR_SERVER_NAME": "example.com",
    }
    info = nginx.host_info(env, "")
    assert (info.host, info.port, info.uri, info.server_name) == (
        "10.0.0.1", 8080, "/status", "example.com"
    )
    assert nginx.host_info(env, "9090").port == 9090
    assert nginx.host_info(env, "0").port == 8080


def test_build_request():
    info = nginx.HostInfo("127.0.0.1", 80, "example.com", "/nginx_status")
    assert nginx.build_request(info) == (
        "GET /nginx_status HTTP/1.0\r\n"
        "User-Agent: taobot\r\n"
        "Host: example.com\r\n"
        "Accept:*/*\r\n"
        "Connection: Close\r\n\r\n"
    )


def test_parse_nginx_status():
    record = nginx.parse_status(NGINX_PAGE)
    assert record == "16630948,16630948,31070465,291,6,179,106,31070465,0,0,0,0,0,0,0,0"


def test_parse_tengine_status():
    page = [
        "Active connections: 5\n",
        "server accepts handled requests request_time\n",
        " 10 11 12 13\n",
        "Reading: 1 Writing: 2 Waiting: 3\n",
        "SSL: 7 SPDY: 8\n",
        "HTTP2: 9\n",
        "SSL_failed: 4\n",
        "SSLv3_failed: 14\n",
        "SSL_handshake: 15\n",
        "SSL_keepalive_reqs: 16\n",
    ]
    assert nginx.parse_status(page) == "10,11,12,5,1,2,3,12,13,7,8,4,14,9,15,16"


def test_parse_server_accepts_line():
    page = ["Server accepts: 20 handled: 21 requests: 22 request_time: 23\n"]
    values = parse_record(nginx.parse_status(page))[""]
    assert values[:3] == [20, 21, 22]
    assert values[7] == 22
    assert values[8] == 23


def test_parse_without_requests_gives_none():
    assert nginx.parse_status(["Active connections: 3\n"]) is None
    assert nginx.parse_status([]) is None


def test_header_without_counter_line_is_ignored():
    page = ["Active connections: 3\n", "server accepts handled requests\n", "garbage\n"]
    assert nginx.parse_status(page) is None


def test_compute_rates():
    pre = [0] * 16
    cur = [5, 6, 20, 7, 8, 9, 10, 20, 40, 4, 6, 8, 10, 12, 14, 16]
    st = nginx.compute(pre, cur, 2)
    assert st[:3] == [5.0, 6.0, 20.0]
    assert st[3:7] == [7.0, 8.0, 9.0, 10.0]
    assert st[7] * 2 == cur[2]
    assert st[8] * cur[2] == cur[8]
    assert [value * 2 for value in st[9:]] == cur[9:]


def test_compute_falling_counters_give_zero():
    pre = [100] * 16
    cur = [50] * 16
    st = nginx.compute(pre, cur, 1)
    assert st[:3] == [0.0, 0.0, 0.0]
    assert st[7:] == [0.0] * 9


def test_module_column_count():
    st = nginx.MODULE.compute([0] * 16, [0] * 16, 1)
    assert len(st) == 16
    with pytest.raises(ValueError):
        nginx.MODULE.compute([0] * 15, [0] * 15, 1)


@pytest.fixture
def status_server():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    received = []
    body = "".join(NGINX_PAGE).encode()

    def run():
        conn, _ = server.accept()
        with conn:
            data = b""
            while b"\r\n\r\n" not in data:
                chunk = conn.recv(4096)
                if not chunk:
                    break
                data += chunk
            received.append(data)
            conn.sendall(b"HTTP/1.0 200 OK\r\n\r\n" + body)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    yield server.getsockname()[1], received
    thread.join(5)
    server.close()


def test_collect_from_server(status_server, monkeypatch):
    port, received = status_server
    monkeypatch.setenv("NGX_TSAR_HOST", "127.0.0.1")
    monkeypatch.setenv("NGX_TSAR_PORT", str(port))
    monkeypatch.delenv("NGX_TSAR_URI", raising=False)
    record = nginx.collect("")
    assert record == "16630948,16630948,31070465,291,6,179,106,31070465,0,0,0,0,0,0,0,0"
    assert received[0].startswith(b"GET /nginx_status HTTP/1.0\r\n")


def test_collect_refused_gives_none(monkeypatch):
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    monkeypatch.setenv("NGX_TSAR_HOST", "127.0.0.1")
    monkeypatch.setenv("NGX_TSAR_PORT", str(port))
    assert nginx.collect("") is None