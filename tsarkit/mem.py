"""Physical memory share from /proc/meminfo."""

from __future__ import annotations

import math
import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module

USAGE = "    --mem               Physical memory share (active, inactive, cached, free, wired)"

INFO = (
    FieldInfo("  free", Bit.DETAIL),
    FieldInfo("  used", Bit.DETAIL),
    FieldInfo("  buff", Bit.DETAIL),
    FieldInfo("  cach", Bit.DETAIL),
    FieldInfo(" total", Bit.DETAIL),
    FieldInfo("  util", Bit.SUMMARY),
)

_UINT = re.compile(r"\s*\+?(\d+)")
_U64 = 1 << 64

# prefix of a meminfo line -> field it fills
_KEYS = {
    "MemTotal:": "total",
    "MemFree:": "free",
    "Buffers:": "buffers",
    "Cached:": "cached",
}


def _first_uint(text: str, default: int) -> int:
    match = _UINT.match(text)
    return int(match.group(1)) if match else default


def parse_meminfo(text: str) -> str:
    """Build the mem record: free, used, buffers, cached, total, util (kB)."""
    values = dict.fromkeys(_KEYS.values(), 0)
    for line in text.splitlines():
        for prefix, key in _KEYS.items():
            if line.startswith(prefix):
                values[key] = _first_uint(line[len(prefix):], values[key])
                break
    # used and util are derived later from the other columns
    return ",".join(
        str(v)
        for v in (values["free"], 0, values["buffers"], values["cached"], values["total"], 0)
    )


def _kb(value: int) -> int:
    return (value << 10) % _U64


def _ratio(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    return math.nan if numerator == 0 else math.inf


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Memory sizes in bytes and the share of memory in use."""
    free, _, buffers, cached, total = cur[:5]
    used = (total - free - buffers - cached) % _U64
    st = [float(_kb(v)) for v in (free, used, buffers, cached, total)]
    st.append(_ratio(st[1] * 100.0, _kb(total)))
    return st


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the mem record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/meminfo").read_text()
    except OSError:
        return None
    return parse_meminfo(text)


MODULE = Module("mem", "--mem", USAGE, INFO, collect, compute)