"""HAProxy liveness and statistics from the local stats socket."""

from __future__ import annotations

import functools
import os
import re
import socket
from dataclasses import astuple, dataclass
from typing import Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module

USAGE = "    --haproxy           haproxy usage"

SOCK_PATH = "/var/run/haproxy.stat"
PID_PATH = "/var/run/haproxy.pid"
SERVER_ADDRESS = "127.0.0.1"
SERVER_PORT = 80
RETRY = 3
MAX_SIZE = 40960
TIMEOUT = 10.0

INFO = (
    FieldInfo("  stat", Bit.SUMMARY),
    FieldInfo("uptime", Bit.SUMMARY),
    FieldInfo(" conns", Bit.DETAIL),
    FieldInfo("   qps", Bit.SUMMARY),
    FieldInfo("   hit", Bit.SUMMARY),
    FieldInfo("    rt", Bit.DETAIL),
)

_U64 = 1 << 64
_NUM = re.compile(r"\s*([+-]?\d+)")

_QPS_TEMPLATE = "total request num: %d/"
_QPS_LONG_KEY = "total request num/total hit request num/ total conns num:"
_QPS_LONG_TEMPLATE = _QPS_LONG_KEY + " %d/"
_RT_TEMPLATE = "mean rt: %d.%d (ms)"
_HIT_TEMPLATE = "req hit ratio: %d.%d "


@dataclass
class HaproxyStats:
    """Values gathered for one haproxy sample."""

    stat: int = 0
    uptime: int = 0
    conns: int = 0
    qps: int = 0
    hit: int = 0
    rt: int = 0


def str_to_int(text: Optional[str]) -> int:
    """The number spelled by text when it holds only digits, otherwise 0."""
    if not text or not all("0" <= ch <= "9" for ch in text):
        return 0
    return int(text)


def headers_done(page: str) -> Optional[str]:
    """The header part of a response once a blank line was seen, else None."""
    ends = [pos for pos in (page.find("\n\n"), page.find("\n\r\n")) if pos >= 0]
    if not ends:
        return None
    return page[: min(ends)]


@functools.lru_cache(maxsize=None)
def _literal(text: str) -> re.Pattern[str]:
    return re.compile("".join(r"\s*" if ch.isspace() else re.escape(ch) for ch in text))


def _scanf(text: str, template: str) -> list[int]:
    """Numbers matched by a template of literals and %d, stopping at the first mismatch."""
    pieces = template.split("%d")
    values: list[int] = []
    pos = 0
    for index, literal in enumerate(pieces):
        match = _literal(literal).match(text, pos)
        if not match or index == len(pieces) - 1:
            break
        number = _NUM.match(text, match.end())
        if not number:
            break
        values.append(int(number.group(1)))
        pos = number.end()
    return values


def _after_space(line: str) -> Optional[str]:
    _, space, rest = line.partition(" ")
    return rest if space else None


def _scaled(values: list[int], scale: int) -> Optional[int]:
    if not values:
        return None
    whole = values[0]
    fraction = values[1] if len(values) > 1 else 0
    return (whole * scale + fraction) % _U64


def parse_detail(text: str, stats: HaproxyStats) -> None:
    """Fill uptime, connections, requests, hit ratio and response time from a reply."""
    for line in text.split("\n"):
        if not line:
            continue
        if "total request num:" in line:
            values = _scanf(line, _QPS_TEMPLATE)
            if values:
                stats.qps = values[0] % _U64
        if _QPS_LONG_KEY in line:
            values = _scanf(line, _QPS_LONG_TEMPLATE)
            if values:
                stats.qps = values[0] % _U64
        if "mean rt:" in line:
            value = _scaled(_scanf(line, _RT_TEMPLATE), 100)
            if value is not None:
                stats.rt = value
        if "req hit ratio:" in line:
            value = _scaled(_scanf(line, _HIT_TEMPLATE), 1000)
            if value is not None:
                stats.hit = value
        if "Uptime_sec" in line:
            rest = _after_space(line)
            if rest is not None:
                stats.uptime = str_to_int(rest) % _U64
        if "CurrConns" in line:
            rest = _after_space(line)
            if rest is not None:
                stats.conns = str_to_int(rest) % _U64


def _signed(value: int) -> int:
    value %= _U64
    return value - _U64 if value >= 1 << 63 else value


def format_record(stats: HaproxyStats) -> str:
    """The haproxy record: stat, uptime, conns, qps, hit, rt."""
    return ",".join(str(_signed(value)) for value in astuple(stats))


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Current values, requests per second and the scaled hit ratio and response time."""
    st = [float(value) for value in cur[:3]]
    st.append(float((cur[3] - pre[3]) // interval) if cur[3] > pre[3] else 0.0)
    st.append(cur[4] / 10.0)
    st.append(cur[5] / 100.0)
    return st


def _http_up() -> bool:
    try:
        with socket.create_connection((SERVER_ADDRESS, SERVER_PORT), timeout=TIMEOUT):
            return True
    except OSError:
        return False


def _ask(command: str) -> Optional[str]:
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(TIMEOUT)
            sock.connect(SOCK_PATH)
            sock.sendall(command.encode("ascii"))
            data = sock.recv(MAX_SIZE - 1)
    except OSError:
        return None
    if not data:
        return None
    return data.decode("latin-1")


def _read_detail(stats: HaproxyStats) -> bool:
    reply = _ask("show tsar\n")
    if reply is None:
        return False
    if "Uptime_sec" not in reply:
        reply = _ask("show info\n")
        if reply is None:
            return False
    parse_detail(reply, stats)
    return True


def collect(parameter: str = "") -> str:
    """Probe haproxy and build its record; empty when it is not running."""
    stats = HaproxyStats()
    for _ in range(RETRY):
        if _http_up() and os.path.exists(PID_PATH):
            stats.stat = 1
            break
    if stats.stat != 1:
        return ""
    _read_detail(stats)
    return format_record(stats)


MODULE = Module("haproxy", "--haproxy", USAGE, INFO, collect, compute)