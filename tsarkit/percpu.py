"""Per-processor CPU share, util counted from busy columns."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import ITEM_SPLIT, Bit, FieldInfo, Merge, Module

USAGE = "    --percpu            Per cpu share (user, system, interrupt, nice, & idle)"

INFO = (
    FieldInfo("  user", Bit.DETAIL, Merge.SUM),
    FieldInfo("   sys", Bit.DETAIL, Merge.SUM),
    FieldInfo("  wait", Bit.DETAIL, Merge.SUM),
    FieldInfo("  hirq", Bit.DETAIL, Merge.SUM),
    FieldInfo("  sirq", Bit.DETAIL, Merge.SUM),
    FieldInfo("  util", Bit.SUMMARY, Merge.SUM),
    FieldInfo("  nice", Bit.HIDE, Merge.SUM),
    FieldInfo(" steal", Bit.HIDE, Merge.SUM),
    FieldInfo(" guest", Bit.HIDE, Merge.SUM),
)

_UINT = re.compile(r"\s*\+?(\d+)")
_TICKS = 9


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


def parse_percpu(stat_text: str) -> str:
    """Build a record with one item per processor, skipping the summary line."""
    ticks = [0] * _TICKS
    items = []
    for line in stat_text.splitlines():
        if not line.startswith("cpu"):
            continue
        name, _, rest = line.partition(" ")
        values = _scan_uints(rest, _TICKS)
        ticks[: len(values)] = values
        if name == "cpu":
            continue
        user, nice, system, idle, iowait, hardirq, softirq, steal, guest = ticks
        ordered = (user, system, iowait, hardirq, softirq, idle, nice, steal, guest)
        items.append(f"{name}=" + ",".join(str(v) for v in ordered) + ITEM_SPLIT)
    return "".join(items)


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Percentages per column; util = user + sys + hirq + sirq + nice."""
    st = [0.0] * _TICKS
    if any(new < old for old, new in zip(pre, cur)):
        return [-1.0] * _TICKS
    total = sum(cur) - sum(pre)
    if total <= 0:
        return st
    st = [(new - old) * 100.0 / total for old, new in zip(pre, cur)]
    st[5] = st[0] + st[1] + st[3] + st[4] + st[6]
    return st


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the per-processor record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/stat").read_text()
    except OSError:
        return None
    return parse_percpu(text)


MODULE = Module("percpu", "--percpu", USAGE, INFO, collect, compute)