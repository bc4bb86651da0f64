"""Overall CPU share from /proc/stat."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Mapping, Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module

USAGE = "    --cpu               CPU share (user, system, interrupt, nice, & idle)"
QUOTA_ENV = "SIGMA_MAX_CPU_QUOTA"

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
    FieldInfo("  ncpu", Bit.HIDE),
)

_UINT = re.compile(r"\s*\+?(\d+)")
_INT = re.compile(r"\s*([+-]?\d+)")
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


def _atoi(text: str) -> int:
    match = _INT.match(text)
    return int(match.group(1)) if match else 0


def parse_cpu(stat_text: str, cpuinfo_text: str) -> str:
    """Build the cpu record from /proc/stat and /proc/cpuinfo contents."""
    # user nice sys idle iowait hardirq softirq steal guest
    ticks = [0] * _TICKS
    for line in stat_text.splitlines():
        if line.startswith("cpu "):
            values = _scan_uints(line[5:], _TICKS)
            ticks[: len(values)] = values
    user, nice, system, idle, iowait, hardirq, softirq, steal, guest = ticks
    ncpu = sum(1 for line in cpuinfo_text.splitlines() if line.startswith("processor\t:"))
    return ",".join(
        str(v)
        for v in (user, system, iowait, hardirq, softirq, idle, nice, steal, guest, ncpu)
    )


def cpu_quota(environ: Mapping[str, str]) -> int:
    """Number of CPUs allowed by the quota variable, 1 when it is unset."""
    value = environ.get(QUOTA_ENV)
    if value is None:
        return 1
    return int(_atoi(value) / 100)


def compute_cpu(
    pre: Sequence[int], cur: Sequence[int], interval: int, quota: int
) -> list[float]:
    """Turn two cpu samples into percentages, scaled by the quota when above one."""
    st = [0.0] * (_TICKS + 1)
    old, new = pre[:_TICKS], cur[:_TICKS]
    if any(n < o for o, n in zip(old, new)) or sum(new) <= sum(old):
        st[:_TICKS] = [-1.0] * _TICKS
        return st
    total = sum(new) - sum(old)
    shares = [(n - o) * 100.0 / total for o, n in zip(old, new)]
    # column 5 holds idle ticks; report util = 100 - idle - wait - steal
    shares[5] = 100.0 - shares[5] - shares[2] - shares[7]
    if quota > 1:
        shares = [share * cur[_TICKS] / quota for share in shares]
    st[:_TICKS] = shares
    st[_TICKS] = float(cur[_TICKS])
    return st


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """compute_cpu with the quota taken from the environment."""
    return compute_cpu(pre, cur, interval, cpu_quota(os.environ))


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the cpu record below root, or None when a file is missing."""
    base = Path(root)
    try:
        stat_text = (base / "proc/stat").read_text()
        cpuinfo_text = (base / "proc/cpuinfo").read_text()
    except OSError:
        return None
    return parse_cpu(stat_text, cpuinfo_text)


MODULE = Module("cpu", "--cpu", USAGE, INFO, collect, compute)