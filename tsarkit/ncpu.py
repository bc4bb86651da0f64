"""Per-processor CPU share from /proc/stat."""

from __future__ import annotations

import math
import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import ITEM_SPLIT, Bit, FieldInfo, Module

USAGE = "    --ncpu               CPU share (user, system, interrupt, nice, & idle)"

INFO = (
    FieldInfo("  user", Bit.DETAIL),
    FieldInfo("   sys", Bit.DETAIL),
    FieldInfo("  wait", Bit.DETAIL),
    FieldInfo("  hirq", Bit.DETAIL),
    FieldInfo("  sirq", Bit.DETAIL),
    FieldInfo("  util", Bit.SUMMARY),
    FieldInfo("  nice", Bit.HIDE),
    FieldInfo(" steal", Bit.HIDE),
    FieldInfo(" guest", Bit.HIDE),
)

_UINT = re.compile(r"\s*\+?(\d+)")
_TICKS = 9
_U64 = 1 << 64


def _scan_uints(text: str, count: int) -> list[int]:
    values = []
    pos = 0
    while len(values) < count:
        match = _UINT.match(text, pos)
        if not match:
            break
        values.append(int(match.group(1)))
        pos = match.end()
    return values


def parse_ncpu(stat_text: str) -> str:
    """Build a record with one item per processor line of /proc/stat."""
    ticks = [0] * _TICKS
    items = []
    for line in stat_text.splitlines():
        if not line.startswith("cpu"):
            continue
        name = line.split()[0]
        if name == "cpu":
            continue
        values = _scan_uints(line[len(name):], _TICKS)
        ticks[: len(values)] = values
        user, nice, system, idle, iowait, hardirq, softirq, steal, guest = ticks
        ordered = (user, system, iowait, hardirq, softirq, idle, nice, steal, guest)
        items.append(f"{name}=" + ",".join(str(v) for v in ordered) + ITEM_SPLIT)
    return "".join(items)


def _ratio(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    return math.nan if numerator == 0 else math.inf


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Percentages of the busy columns and util for one processor."""
    st = [0.0] * _TICKS
    total = (sum(cur) - sum(pre)) % _U64
    for index, (old, new) in enumerate(zip(pre[:5], cur[:5])):
        if new >= old:
            st[index] = _ratio((new - old) * 100.0, total)
    if cur[5] >= pre[5]:
        st[5] = 100.0 - _ratio((cur[5] - pre[5]) * 100.0, total)
    return st


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the per-processor record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/stat").read_text()
    except OSError:
        return None
    return parse_ncpu(text)


MODULE = Module("ncpu", "--ncpu", USAGE, INFO, collect, compute)