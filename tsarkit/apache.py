"""Apache server-status statistics with request counters from a shared file."""

from __future__ import annotations

import os
import re
import socket
import struct
from typing import Iterable, Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --apache            apache statistics"

INFO = (
    FieldInfo("   qps", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("    rt", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  sent", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  busy", Bit.DETAIL),
    FieldInfo("  idle", Bit.DETAIL),
)

HOST = "127.0.0.1"
PORT = 80
STATUS_PATH = "server-status?auto"
DEFAULT_RT_PATH = "/tmp/apachert.mmap"
TIMEOUT = 10.0

_COUNTERS = struct.Struct("=QQ")
_NUM = re.compile(r"\s*([+-]?\d+)")
_U64 = 1 << 64
_U32 = 1 << 32


def build_request(host: str) -> str:
    """The HTTP request asking for the machine-readable status page."""
    return (
        f"GET /{STATUS_PATH} HTTP/1.0\r\n"
        "User-Agent: Wget/1.9\r\n"
        f"Host: {host}\r\n"
        "Accept:*/*\r\n"
        "Connection: Close\r\n\r\n"
    )


def _number(text: str, default: int, modulus: int) -> int:
    match = _NUM.match(text)
    return int(match.group(1)) % modulus if match else default


def parse_status(lines: Iterable[str]) -> tuple[int, int, int]:
    """Kilobytes sent, busy and idle workers from server-status lines."""
    kbytes = busy = idle = 0
    for line in lines:
        if line.startswith("Total kBytes:"):
            kbytes = _number(line[14:], kbytes, _U64)
        elif line.startswith("BusyWorkers:"):
            busy = _number(line[13:], busy, _U32)
        elif line.startswith("IdleWorkers:"):
            idle = _number(line[13:], idle, _U32)
    return kbytes, busy, idle


def _signed(value: int) -> int:
    value %= _U64
    return value - _U64 if value >= 1 << 63 else value


def format_record(query: int, response_time: int, stats: Sequence[int]) -> str:
    """The apache record: queries, response time in ms, kB sent, busy and idle workers."""
    kbytes, busy, idle = stats
    return f"{_signed(query)},{_signed(response_time // 1000)},{_signed(kbytes)},{busy},{idle}"


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Queries per second, mean response time, kB sent per second and worker counts."""
    st = [0.0] * len(INFO)
    if cur[0] >= pre[0]:
        st[0] = (cur[0] - pre[0]) / interval
    if cur[1] >= pre[1] and cur[0] > pre[0]:
        st[1] = (cur[1] - pre[1]) / (cur[0] - pre[0])
    if cur[2] >= pre[2]:
        st[2] = (cur[2] - pre[2]) / interval
    st[3] = float(cur[3])
    st[4] = float(cur[4])
    return st


def _fetch_status() -> tuple[int, int, int]:
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError:
        return 0, 0, 0
    with sock:
        try:
            sock.settimeout(TIMEOUT)
            sock.connect((HOST, PORT))
            sock.sendall(build_request(HOST).encode("latin-1"))
        except OSError:
            return 0, 0, 0
        chunks = []
        while True:
            try:
                data = sock.recv(4096)
            except OSError:
                break
            if not data:
                break
            chunks.append(data)
    text = b"".join(chunks).decode("latin-1")
    return parse_status(text.splitlines(keepends=True))


def collect(parameter: str = "", rt_path: str | os.PathLike = DEFAULT_RT_PATH) -> Optional[str]:
    """Read the counter file and the status page, or None when the counter file is unusable."""
    try:
        with open(rt_path, "rb") as counters:
            head = counters.read(_COUNTERS.size)
    except OSError:
        return None
    if len(head) != _COUNTERS.size:
        return None
    query, response_time = _COUNTERS.unpack(head)
    return format_record(query, response_time, _fetch_status())


MODULE = Module("apache", "--apache", USAGE, INFO, collect, compute)