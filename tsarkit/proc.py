"""CPU, memory and I/O usage of one named process."""

from __future__ import annotations

import math
import os
import re
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module

USAGE = "    --proc              PROC info (mem cpu usage & io/fd info)"

INFO = (
    FieldInfo("  user", Bit.SUMMARY),
    FieldInfo("   sys", Bit.SUMMARY),
    FieldInfo(" total", Bit.HIDE),
    FieldInfo("   mem", Bit.SUMMARY),
    FieldInfo("   RSS", Bit.DETAIL),
    FieldInfo("  read", Bit.DETAIL),
    FieldInfo(" write", Bit.DETAIL),
)

_MAX_NAME = 20
_COMMAND_ROOM = 25
_NUM = re.compile(r"\s*([+-]?\d+)")
_MEMTOTAL = re.compile(r"MemTotal:\s*\+?(\d+)")
_U64 = 1 << 64


def _scan(text: str, count: int) -> list[int]:
    values = []
    pos = 0
    while len(values) < count:
        match = _NUM.match(text, pos)
        if not match:
            break
        values.append(int(match.group(1)) % _U64)
        pos = match.end()
    return values


def parse_pid_stat(text: str) -> tuple[int, int]:
    """User and system ticks of a process (children included) from /proc/<pid>/stat."""
    line = text.splitlines()[0] if text else ""
    index = line.find(")")
    if index < 0:
        raise ValueError("no command name in stat line")
    tokens = line[index:].split()
    # ")" state ppid pgrp session tty tpgid flags minflt cminflt majflt cmajflt
    try:
        utime, stime, cutime, cstime = (int(t) % _U64 for t in tokens[12:16])
    except ValueError as exc:
        raise ValueError("malformed stat line") from exc
    if len(tokens) < 16:
        raise ValueError("stat line too short")
    return utime + cutime, stime + cstime


def parse_vmrss(text: str) -> int:
    """Resident set size in bytes from /proc/<pid>/status."""
    total = 0
    for line in text.splitlines():
        if line.startswith("VmRSS:"):
            values = _scan(line[6:], 1)
            if values:
                total += values[0] * 1024
    return total


def parse_pid_io(text: str) -> tuple[int, int]:
    """Bytes read and written from /proc/<pid>/io."""
    read_bytes = write_bytes = 0
    for line in text.splitlines():
        if line.startswith("read_bytes:"):
            read_bytes += sum(_scan(line[11:], 1))
        elif line.startswith("write_bytes:"):
            write_bytes += sum(_scan(line[12:], 1))
    return read_bytes, write_bytes


def parse_total_cpu(text: str) -> int:
    """Sum of the first ten tick counters in /proc/stat."""
    parts = text.split(None, 1)
    if not parts:
        raise ValueError("empty stat file")
    return sum(_scan(parts[1] if len(parts) > 1 else "", 10))


def parse_total_mem(text: str) -> int:
    """Total memory in bytes from /proc/meminfo, 0 when the first line is not MemTotal."""
    if not text:
        raise ValueError("empty meminfo file")
    match = _MEMTOTAL.match(text)
    return int(match.group(1)) * 1024 if match else 0


def _ratio(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    return math.nan if numerator == 0 else math.inf


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """CPU shares, memory share, RSS and I/O rates; all zero when no ticks passed."""
    st = [0.0] * len(INFO)
    if cur[2] <= pre[2]:
        return st
    total = cur[2] - pre[2]
    st[2] = float(total)
    st[0] = (cur[0] - pre[0]) * 100.0 / total if cur[0] >= pre[0] else 0.0
    st[1] = (cur[1] - pre[1]) * 100.0 / total if cur[1] >= pre[1] else 0.0
    st[3] = _ratio(cur[4] * 100.0, cur[3])
    st[4] = float(cur[4])
    st[5] = (cur[5] - pre[5]) / interval if cur[5] >= pre[5] else 0.0
    if cur[6] >= pre[6]:
        st[6] = (cur[6] - pre[6]) / interval
    else:
        # a falling write counter clears the read rate, leaving write at zero
        st[5] = 0.0
    return st


def _first_pid(parameter: str) -> Optional[int]:
    try:
        result = subprocess.run(
            ["pidof", *parameter[:_COMMAND_ROOM].split()],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    tokens = result.stdout.split()
    if not tokens:
        return None
    match = _NUM.match(tokens[0])
    pid = int(match.group(1)) if match else 0
    return pid if pid > 0 else None


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the record of the first process named by the parameter, or None."""
    if len(parameter) > _MAX_NAME:
        return None
    pid = _first_pid(parameter)
    if pid is None:
        return None
    base = Path(root) / "proc"
    pid_dir = base / str(pid)
    try:
        user, system = parse_pid_stat((pid_dir / "stat").read_text())
        mem = parse_vmrss((pid_dir / "status").read_text())
        read_bytes, write_bytes = parse_pid_io((pid_dir / "io").read_text())
        total_cpu = parse_total_cpu((base / "stat").read_text())
        total_mem = parse_total_mem((base / "meminfo").read_text())
    except (OSError, ValueError):
        return None
    return ",".join(
        str(v) for v in (user, system, total_cpu, total_mem, mem, read_bytes, write_bytes)
    )


MODULE = Module("proc", "--proc", USAGE, INFO, collect, compute)