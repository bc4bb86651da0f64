"""TCP traffic counters from /proc/net/snmp."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --tcp               TCP traffic     (v4)"

INFO = (
    FieldInfo("active", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("pasive", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  iseg", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("outseg", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("EstReset", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("AtmpFail", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("CurrEstab", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("retran", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
)

_NUM = re.compile(r"\s*([+-]?\d+)")
_U64 = 1 << 64
_FIELDS = 10


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


def _second_line(text: str, prefix: str) -> Optional[str]:
    """The rest of the second line starting with prefix (the values line)."""
    seen = False
    for line in text.splitlines():
        if line.startswith(prefix):
            if seen:
                return line[len(prefix):]
            seen = True
    return None


def parse_tcp(snmp_text: str) -> str:
    """Build the tcp record from /proc/net/snmp contents."""
    rest = _second_line(snmp_text, "Tcp:")
    # RtoAlgorithm RtoMin RtoMax MaxConn come first and are skipped
    values = _scan(rest, 4 + _FIELDS)[4:] if rest is not None else []
    values += [0] * (_FIELDS - len(values))
    (active, passive, attempt_fails, estab_resets, curr_estab,
     in_segs, out_segs, retrans, _in_errs, _out_rsts) = values
    return ",".join(
        str(v)
        for v in (active, passive, in_segs, out_segs, estab_resets,
                  attempt_fails, curr_estab, retrans)
    )


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Rates per second, current connections and retransmission ratio (capped at 100)."""
    st = [0.0] * len(INFO)
    for index, (old, new) in enumerate(zip(pre[:6], cur[:6])):
        if new >= old:
            st[index] = (new - old) / interval
    st[6] = float(cur[6])
    if cur[7] >= pre[7] and cur[3] > pre[3]:
        st[7] = min((cur[7] - pre[7]) * 100.0 / (cur[3] - pre[3]), 100.0)
    return st


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the tcp record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/net/snmp").read_text()
    except OSError:
        return None
    return parse_tcp(text)


MODULE = Module("tcp", "--tcp", USAGE, INFO, collect, compute)