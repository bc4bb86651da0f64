"""Run queue and load averages from /proc/loadavg."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module

USAGE = "    --load              System Run Queue and load average"

INFO = (
    FieldInfo(" load1", Bit.SUMMARY),
    FieldInfo(" load5", Bit.DETAIL),
    FieldInfo("load15", Bit.DETAIL),
    FieldInfo("  runq", Bit.DETAIL),
    FieldInfo("  plit", Bit.DETAIL),
)

_NUM = r"\s*([+-]?\d+)"
_LOADAVG = re.compile(
    _NUM + r"\." + r"([+-]?\d+)"
    + _NUM + r"\." + r"([+-]?\d+)"
    + _NUM + r"\." + r"([+-]?\d+)"
    + _NUM + r"/" + r"([+-]?\d+)"
)


def parse_loadavg(text: str) -> str:
    """Build the load record: load1, load5, load15 (hundredths), runq, threads."""
    match = _LOADAVG.match(text)
    if not match:
        raise ValueError(f"unrecognised loadavg line {text!r}")
    i1, f1, i5, f5, i15, f15, running, threads = (int(g) for g in match.groups())
    if running:
        # the reading process itself is not counted
        running -= 1
    loads = (f1 + i1 * 100, f5 + i5 * 100, f15 + i15 * 100)
    return ",".join(str(v) for v in (*loads, running, threads))


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Load averages back to units; queue and thread counts as they are."""
    return [value / 100.0 for value in cur[:3]] + [float(cur[3]), float(cur[4])]


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the load record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/loadavg").read_text()
        return parse_loadavg(text)
    except (OSError, ValueError):
        return None


MODULE = Module("load", "--load", USAGE, INFO, collect, compute)