"""Squid cache manager statistics gathered from every configured instance."""

from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass, fields
from typing import Callable, Iterable, Optional, Sequence

from tsarkit.module import ITEM_SPLIT, Bit, FieldInfo, Merge, Module, StatsOpt

USAGE = "    --squid             Squid utilities"

RETRY_NUM = 3
MAXSQUID = 10
MAXINT = 2147483647
DEFAULT_PORT = 3128
SQUID_CONF_DIR = "/etc/squid/"
HOST = "localhost"
TIMEOUT = 10.0
MIN_RESPONSE = 1000
BUFFER_LEN = 4096
COMMANDS = ("info", "counters")

INFO = (
    FieldInfo("   qps", Bit.SUMMARY, Merge.SUM, StatsOpt.SUB_INTER),
    FieldInfo("    rt", Bit.DETAIL, Merge.AVG),
    FieldInfo(" r_hit", Bit.DETAIL, Merge.AVG),
    FieldInfo(" b_hit", Bit.DETAIL, Merge.AVG),
    FieldInfo(" d_hit", Bit.DETAIL, Merge.AVG),
    FieldInfo(" m_hit", Bit.DETAIL, Merge.AVG),
    FieldInfo("fdused", Bit.DETAIL, Merge.SUM),
    FieldInfo(" fdque", Bit.DETAIL, Merge.SUM),
    FieldInfo("  objs", Bit.DETAIL, Merge.SUM),
    FieldInfo(" inmem", Bit.DETAIL, Merge.SUM),
    FieldInfo("   hot", Bit.DETAIL, Merge.SUM),
    FieldInfo("  size", Bit.DETAIL, Merge.AVG),
    FieldInfo("totalp", Bit.DETAIL, Merge.AVG),
    FieldInfo(" livep", Bit.DETAIL, Merge.AVG),
)

_U64 = 1 << 64
_U32 = 1 << 32
_LONG_MAX = (1 << 63) - 1
_LONG_MIN = -(1 << 63)
_PORT_TEXT_LEN = 31

_DIGITS = re.compile(r"\d+")
_FLOAT = re.compile(r"(\d+)(?:\.\s*([+-]?\d+))?")
_SQUID_START = re.compile(r"[0-9-]")
_SQUID_NUMBER = re.compile(r"-?\d+")
_ATOI = re.compile(r"\s*([+-]?\d+)")

COUNTER_KEYS = (
    "client_http.requests",
    "client_http.hits",
    "client_http.kbytes_out",
    "client_http.hit_kbytes_out",
)


@dataclass
class SquidStats:
    """Counters and info values of one squid instance."""

    http_requests: int = 0
    http_hits: int = 0
    http_kbytes_out: int = 0
    http_hit_kbytes_out: int = 0
    mem_total: int = 0
    mem_free: int = 0
    mem_size: int = 0
    fd_used: int = 0
    fd_queue: int = 0
    entries: int = 0
    memobjs: int = 0
    hotitems: int = 0
    meanobjsize: int = 0
    responsetime: int = 0
    disk_hit: int = 0
    mem_hit: int = 0
    http_hit_rate: int = 0
    byte_hit_rate: int = 0


def _clamp(value: int) -> int:
    return max(_LONG_MIN, min(_LONG_MAX, value))


def _uint(value: int) -> int:
    return _clamp(value) % _U32


def _ull(value: int) -> int:
    return _clamp(value) % _U64


def _int32(value: int) -> int:
    value = _clamp(value) % _U32
    return value - _U32 if value >= 1 << 31 else value


def _atoi(text: Optional[str]) -> int:
    match = _ATOI.match(text or "")
    return int(match.group(1)) if match else 0


def read_int_value(line: str, key: str, left: bool = False) -> Optional[int]:
    """The first number after key (or anywhere in the line when left), None if absent."""
    index = line.find(key)
    if index < 0:
        return None
    match = _DIGITS.search(line if left else line[index:])
    return int(match.group()) if match else None


def read_float_value(line: str, key: str, left: bool = False, scale: int = 10) -> Optional[int]:
    """A decimal "r.l" after key as r * scale + l, skipping up to a "min" label.

    Returns None when the key or the number is missing; a missing fraction counts as 0.
    """
    index = line.find(key)
    if index < 0:
        return None
    text = line if left else line[index:]
    label = text.find("min")
    if label >= 0:
        text = text[label:]
    match = _FLOAT.search(text)
    if not match:
        return None
    whole = _int32(int(match.group(1)))
    fraction = _int32(int(match.group(2))) if match.group(2) else 0
    return (whole * scale + fraction) % _U64


def _read_request_counter(line: str, key: str, current: int) -> int:
    """Request counter that may have been printed as a wrapped negative 32-bit value."""
    index = line.find(key)
    if index < 0:
        return current
    value = current
    start = _SQUID_START.search(line, index)
    if start:
        match = _SQUID_NUMBER.match(line, start.start())
        if match:
            value = _ull(int(match.group()))
    if value > MAXINT:
        value = (value + MAXINT) % _U64
    return value


def _update(
    stats: SquidStats, name: str, value: Optional[int], convert: Callable[[int], int] = _ull
) -> None:
    if value is not None:
        setattr(stats, name, convert(value))


def collect_counters(line: str, stats: SquidStats) -> None:
    """Pick client HTTP counters out of one line of the counters page."""
    stats.http_requests = _read_request_counter(line, COUNTER_KEYS[0], stats.http_requests)
    _update(stats, "http_hits", read_int_value(line, COUNTER_KEYS[1]))
    _update(stats, "http_kbytes_out", read_int_value(line, COUNTER_KEYS[2]))
    _update(stats, "http_hit_kbytes_out", read_int_value(line, COUNTER_KEYS[3]))


def collect_info(line: str, stats: SquidStats) -> None:
    """Pick memory, descriptor, object and ratio values out of one line of the info page."""
    _update(stats, "mem_total", read_int_value(line, "Total in use"))
    _update(stats, "mem_free", read_int_value(line, "Total free"))
    _update(stats, "mem_size", read_int_value(line, "Total size"))
    _update(stats, "fd_used", read_int_value(line, "Number of file desc currently in use"), _uint)
    _update(stats, "fd_queue", read_int_value(line, "Files queued for open"), _uint)
    # the longer key must be tried before "StoreEntries"
    if "StoreEntries with MemObjects" in line:
        _update(stats, "memobjs", read_int_value(line, "StoreEntries with MemObjects", True), _uint)
        return
    _update(stats, "entries", read_int_value(line, "StoreEntries", True), _uint)
    _update(stats, "hotitems", read_int_value(line, "Hot Object Cache Items", True), _uint)
    _update(stats, "responsetime", read_float_value(line, "Average HTTP respone time", False, 100))
    _update(stats, "meanobjsize", read_float_value(line, "Mean Object Size:", False, 100))
    _update(stats, "disk_hit", read_float_value(line, "Request Filesystem Hit Ratios:", False, 10))
    _update(stats, "mem_hit", read_float_value(line, "Request Memory Hit Ratios:", False, 10))
    _update(stats, "http_hit_rate", read_float_value(line, "Request Hit Ratios:", False, 10))
    _update(stats, "byte_hit_rate", read_float_value(line, "Byte Hit Ratios:", False, 10))
    _update(stats, "disk_hit", read_float_value(line, "Request Disk Hit Ratios:", False, 10))
    _update(stats, "responsetime", read_float_value(line, "HTTP Requests (All):", False, 100000))


def parse_squid_info(text: str, command: str, stats: SquidStats) -> bool:
    """Feed a cache manager page into stats; False when counters show no requests."""
    if command not in COMMANDS:
        raise ValueError(f"unknown command {command!r}")
    handler = collect_counters if command == "counters" else collect_info
    for line in text.split("\n"):
        if line:
            handler(line, stats)
    return not (command == "counters" and stats.http_requests == 0)


def squid_ports(names: Iterable[str]) -> list[int]:
    """Ports of instances named by squid.<port>.conf files, at most MAXSQUID."""
    ports: list[int] = []
    for name in names:
        start = name.find("squid.")
        if start < 0:
            continue
        rest = name[start + 6:]
        end = rest.find(".conf")
        if end < 0 or end + 5 != len(rest):
            continue
        ports.append(_atoi(rest[:end][:_PORT_TEXT_LEN]))
        if len(ports) >= MAXSQUID:
            break
    return ports


def store_single_port(name: str, stats: SquidStats, total: int, live: int) -> str:
    """One record item (without separator) for an instance."""
    values = (
        stats.http_requests,
        stats.responsetime,
        stats.http_hit_rate,
        stats.byte_hit_rate,
        stats.disk_hit,
        stats.mem_hit,
        stats.fd_used,
        stats.fd_queue,
        stats.entries,
        stats.memobjs,
        stats.hotitems,
        stats.meanobjsize,
        total % _U32,
        live % _U32,
    )
    return f"{name}=" + ",".join(str(v) for v in values)


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Requests per second, scaled ratios and sizes, counts as they are."""
    st = [0.0] * len(INFO)
    st[0] = float((cur[0] - pre[0]) // interval) if cur[0] >= pre[0] else 0.0
    st[1] = cur[1] / 100.0
    for index in range(2, 6):
        st[index] = cur[index] / 10.0
    for index in range(6, 11):
        st[index] = float(cur[index])
    st[11] = ((cur[11] << 10) % _U64) / 100.0
    st[12] = float(cur[12])
    st[13] = float(cur[13])
    return st


def _build_request(command: str) -> str:
    return (
        f"GET cache_object://{HOST}/{command} HTTP/1.1\r\n"
        f"Host: {HOST}\r\n"
        "Accept:*/*\r\n"
        "Connection: close\r\n\r\n"
    )


def _query(port: int, command: str) -> Optional[str]:
    try:
        with socket.create_connection((HOST, port & 0xFFFF), timeout=TIMEOUT) as sock:
            sock.sendall(_build_request(command).encode("ascii"))
            chunks = []
            size = 0
            while size < BUFFER_LEN - 1:
                try:
                    data = sock.recv(BUFFER_LEN - 1 - size)
                except OSError:
                    break
                if not data:
                    break
                chunks.append(data)
                size += len(data)
    except (OSError, OverflowError):
        return None
    return b"".join(chunks).decode("latin-1")


def _read_port(port: int, stats: SquidStats) -> bool:
    for command in COMMANDS:
        text = _query(port, command)
        if text is None or len(text) < MIN_RESPONSE:
            return False
        if not parse_squid_info(text, command, stats):
            return False
    return True


def collect(parameter: str = "") -> Optional[str]:
    """Query every instance; None unless all of them answered."""
    try:
        names = os.listdir(SQUID_CONF_DIR)
    except OSError:
        names = []
    ports = squid_ports(names)
    if not ports:
        ports = [_atoi(parameter) or DEFAULT_PORT]
    total = len(ports)
    usable: list[tuple[int, SquidStats]] = []
    for port in ports:
        stats = SquidStats()
        retry = 0
        while not _read_port(port, stats) and retry < RETRY_NUM:
            retry += 1
        if retry < RETRY_NUM:
            usable.append((port, stats))
    live = len(usable)
    if not usable or live != total:
        return None
    return "".join(
        store_single_port(f"port{port}", stats, total, live) + ITEM_SPLIT
        for port, stats in usable
    )


MODULE = Module("squid", "--squid", USAGE, INFO, collect, compute)


__all_fields__ = tuple(field.name for field in fields(SquidStats))