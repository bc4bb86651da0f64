import socket
import socketserver
import threading
from unittest.mock import patch

import pytest

from tsarkit.module import parse_record
from tsarkit.squid import (
    MAXINT,
    MAXSQUID,
    MODULE,
    SquidStats,
    collect,
    collect_counters,
    collect_info,
    compute,
    parse_squid_info,
    read_float_value,
    read_int_value,
    squid_ports,
    store_single_port,
)


def test_read_int_value_right_of_key():
    line = "\tNumber of file desc currently in use:   12"
    assert read_int_value(line, "Number of file desc currently in use") == 12


def test_read_int_value_left_of_key():
    assert read_int_value("\t   345 StoreEntries", "StoreEntries", True) == 345


def test_read_int_value_missing_key():
    assert read_int_value("nothing here 42", "StoreEntries") is None


def test_read_float_value_skips_minute_label():
    line = "\tRequest Hit Ratios:\t5min: 12.3%, 60min: 10.5%"
    assert read_float_value(line, "Request Hit Ratios:", False, 10) == 123


@pytest.mark.parametrize("scale", [10, 100, 100000])
def test_read_float_value_scales_whole_part(scale):
    line = "\tMean Object Size:\t7.0 KB"
    assert read_float_value(line, "Mean Object Size:", False, scale) == 7 * scale


def test_read_float_value_missing_key():
    assert read_float_value("Byte Hit Ratios: 1.0", "Request Hit Ratios:") is None


def test_collect_counters_reads_fields():
    stats = SquidStats()
    collect_counters("client_http.requests = 4242", stats)
    collect_counters("client_http.hits = 17", stats)
    collect_counters("client_http.hit_kbytes_out = 33", stats)
    assert stats.http_requests == 4242
    assert stats.http_hits == 17
    assert stats.http_hit_kbytes_out == 33
    assert stats.http_kbytes_out == 0


def test_collect_counters_negative_request_counter_wraps():
    stats = SquidStats()
    collect_counters("client_http.requests = -5", stats)
    assert stats.http_requests == MAXINT - 5


def test_collect_info_memobjs_line_does_not_set_entries():
    stats = SquidStats()
    collect_info("\t   10 StoreEntries with MemObjects", stats)
    assert stats.memobjs == 10
    assert stats.entries == 0


def test_collect_info_store_entries():
    stats = SquidStats()
    collect_info("\t   900 StoreEntries", stats)
    collect_info("\t   55 Hot Object Cache Items", stats)
    assert stats.entries == 900
    assert stats.hotitems == 55


def test_parse_squid_info_counters_without_requests_fails():
    stats = SquidStats()
    assert parse_squid_info("client_http.hits = 3\n", "counters", stats) is False
    assert stats.http_hits == 3


def test_parse_squid_info_counters_with_requests():
    stats = SquidStats()
    assert parse_squid_info("x\n\nclient_http.requests = 99\n", "counters", stats) is True
    assert stats.http_requests == 99


def test_parse_squid_info_info_page():
    stats = SquidStats()
    text = "\tNumber of file desc currently in use:   21\n\tFiles queued for open:   4\n"
    assert parse_squid_info(text, "info", stats) is True
    assert (stats.fd_used, stats.fd_queue) == (21, 4)


def test_parse_squid_info_unknown_command():
    with pytest.raises(ValueError):
        parse_squid_info("anything", "menu", SquidStats())


def test_squid_ports_filters_names():
    names = ["squid.3128.conf", "squid.conf", "squid.8080.conf.bak", "other", "squid.81.conf"]
    assert squid_ports(names) == [3128, 81]


def test_squid_ports_capped():
    names = [f"squid.{3000 + n}.conf" for n in range(MAXSQUID + 5)]
    ports = squid_ports(names)
    assert len(ports) == MAXSQUID
    assert ports[0] == 3000


def test_store_single_port_format():
    stats = SquidStats(http_requests=7, fd_used=3, meanobjsize=2251)
    item = store_single_port("port3128", stats, 2, 1)
    assert item.startswith("port3128=")
    values = parse_record(item + ";")["port3128"]
    assert len(values) == MODULE.n_col
    assert values[0] == 7
    assert values[6] == 3
    assert values[11] == 2251
    assert values[12:] == [2, 1]


def test_compute_rate_is_whole_and_bounded():
    pre = [100] + [0] * 13
    cur = [137] + [0] * 13
    st = compute(pre, cur, 5)
    assert st[0].is_integer()
    assert st[0] * 5 <= 37 < (st[0] + 1) * 5


def test_compute_falling_counter_gives_zero():
    pre = [500] + [0] * 13
    cur = [10] + [0] * 13
    assert compute(pre, cur, 1)[0] == 0.0


def test_compute_counts_and_scaled_values():
    cur = [0, 250, 30, 40, 50, 60, 6, 7, 8, 9, 10, 100, 2, 2]
    st = compute([0] * 14, cur, 1)
    assert st[6:11] == [6.0, 7.0, 8.0, 9.0, 10.0]
    assert st[12:] == [2.0, 2.0]
    assert st[11] == 1024.0
    assert st[2] * 10 == pytest.approx(30)
    assert st[1] * 100 == pytest.approx(250)


PAYLOAD = (
    "HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\n\r\n"
    "client_http.requests = 4242\n"
    "client_http.hits = 17\n"
    "\tNumber of file desc currently in use:   21\n"
    "\t   900 StoreEntries\n"
    "\tRequest Hit Ratios:\t5min: 12.3%, 60min: 10.5%\n"
    + "# filler\n" * 150
).encode("ascii")


class _Handler(socketserver.BaseRequestHandler):
    def handle(self):
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = self.request.recv(1024)
            if not chunk:
                break
            data += chunk
        self.server.requests.append(data)
        self.request.sendall(PAYLOAD)


@pytest.fixture
def squid_server():
    socketserver.ThreadingTCPServer.allow_reuse_address = True
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    server.requests = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.shutdown()
        server.server_close()


def test_collect_from_live_instance(squid_server):
    port = squid_server.server_address[1]
    with patch("tsarkit.squid.os.listdir", side_effect=OSError):
        record = collect(str(port))
    items = parse_record(record)
    assert list(items) == [f"port{port}"]
    values = items[f"port{port}"]
    assert len(values) == MODULE.n_col
    assert values[0] == 4242
    assert values[6] == 21
    assert values[8] == 900
    assert values[12:] == [1, 1]
    sent = b"".join(squid_server.requests)
    assert b"GET cache_object://localhost/info HTTP/1.1" in sent
    assert b"GET cache_object://localhost/counters HTTP/1.1" in sent


def test_collect_without_listener_returns_none():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    with patch("tsarkit.squid.os.listdir", side_effect=OSError):
        assert collect(str(port)) is None