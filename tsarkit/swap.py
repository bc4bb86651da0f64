"""Swap activity and usage from /proc/vmstat and /proc/meminfo."""

from __future__ import annotations

import math
import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module

USAGE = "    --swap              swap usage"

INFO = (
    FieldInfo(" swpin", Bit.DETAIL),
    FieldInfo("swpout", Bit.DETAIL),
    FieldInfo(" total", Bit.DETAIL),
    FieldInfo("  util", Bit.DETAIL),
)

_UINT = re.compile(r"\s*\+?(\d+)")


def _first_uint(text: str, default: int) -> int:
    match = _UINT.match(text)
    return int(match.group(1)) if match else default


def parse_swap(vmstat_text: str, meminfo_text: str) -> str:
    """Build the record: pages swapped in, out, swap total and free in bytes."""
    pswpin = pswpout = 0
    for line in vmstat_text.splitlines():
        if line.startswith("pswpin "):
            pswpin = _first_uint(line[7:], pswpin)
        elif line.startswith("pswpout "):
            pswpout = _first_uint(line[8:], pswpout)
    total = free = 0
    for line in meminfo_text.splitlines():
        if line.startswith("SwapTotal:"):
            total = _first_uint(line[10:], total)
        elif line.startswith("SwapFree:"):
            free = _first_uint(line[9:], free)
    return f"{pswpin},{pswpout},{total * 1024},{free * 1024}"


def _rate(old: int, new: int, interval: int) -> float:
    return float((new - old) // interval) if new >= old else 0.0


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Swap rates per second, swap total and share of swap in use."""
    if cur[2]:
        util = 100.0 - cur[3] * 100.0 / cur[2]
    else:
        util = math.nan if cur[3] == 0 else -math.inf
    return [
        _rate(pre[0], cur[0], interval),
        _rate(pre[1], cur[1], interval),
        float(cur[2]),
        util,
    ]


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the swap record below root, or None when a file is missing."""
    base = Path(root)
    try:
        vmstat_text = (base / "proc/vmstat").read_text()
        meminfo_text = (base / "proc/meminfo").read_text()
    except OSError:
        return None
    return parse_swap(vmstat_text, meminfo_text)


MODULE = Module("swap", "--swap", USAGE, INFO, collect, compute)