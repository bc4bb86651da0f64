import pytest

from tsarkit import tcp

SNMP = (
    "Ip: Forwarding DefaultTTL InReceives\n"
    "Ip: 1 64 12345\n"
    "Tcp: RtoAlgorithm RtoMin RtoMax MaxConn ActiveOpens PassiveOpens AttemptFails "
    "EstabResets CurrEstab InSegs OutSegs RetransSegs InErrs OutRsts\n"
    "Tcp: 1 200 120000 -1 101 202 303 404 505 606 707 808 909 1010\n"
    "Udp: InDatagrams NoPorts InErrors OutDatagrams\n"
    "Udp: 1 2 3 4\n"
)


def test_parse_tcp_orders_columns():
    assert tcp.parse_tcp(SNMP) == "101,202,606,707,404,303,505,808"


def test_parse_tcp_without_values_line():
    text = "Tcp: RtoAlgorithm RtoMin RtoMax MaxConn ActiveOpens\n"
    assert tcp.parse_tcp(text) == ",".join(["0"] * 8)


def test_parse_tcp_partial_values_line():
    text = "Tcp: header\nTcp: 1 200 120000 -1 7\n"
    assert tcp.parse_tcp(text).split(",") == ["7"] + ["0"] * 7


def test_compute_rates_and_current():
    pre = [0] * 8
    cur = [10, 20, 30, 40, 50, 60, 70, 10]
    result = tcp.compute(pre, cur, 10)
    assert result[0] == 1.0
    assert result[6] == 70.0
    assert len(result) == len(tcp.INFO)


def test_compute_retrans_capped():
    pre = [0] * 8
    cur = [0, 0, 0, 40, 0, 0, 0, 80]
    assert tcp.compute(pre, cur, 1)[7] == 100.0


def test_compute_counter_going_back_gives_zero():
    pre = [5, 0, 0, 0, 0, 0, 0, 0]
    cur = [1, 0, 0, 0, 0, 0, 0, 0]
    assert tcp.compute(pre, cur, 1)[0] == 0.0


def test_compute_retrans_needs_outseg_progress():
    pre = [0, 0, 0, 40, 0, 0, 0, 0]
    cur = [0, 0, 0, 40, 0, 0, 0, 80]
    assert tcp.compute(pre, cur, 1)[7] == 0.0


def test_collect_reads_snmp(tmp_path):
    (tmp_path / "proc/net").mkdir(parents=True)
    (tmp_path / "proc/net/snmp").write_text(SNMP)
    assert tcp.collect("", tmp_path) == tcp.parse_tcp(SNMP)


def test_collect_missing_file(tmp_path):
    assert tcp.collect("", tmp_path) is None


def test_module_rejects_wrong_width():
    with pytest.raises(ValueError):
        tcp.MODULE.compute([0] * 3, [0] * 8, 1)