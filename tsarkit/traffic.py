"""Total network traffic of physical interfaces from /proc/net/dev."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --traffic           Net traffic statistics"

INFO = (
    FieldInfo(" bytin", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("bytout", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" pktin", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("pktout", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("pkterr", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("pktdrp", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
)

DEFAULT_PREFIXES = ("eth", "em", "en")
MAX_PREFIXES = 10
_PARAMETER_LEN = 256

_NUM = re.compile(r"\s*([+-]?\d+)")
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


def _prefixes(parameter: Optional[str]) -> list[str]:
    prefixes = list(DEFAULT_PREFIXES)
    if parameter:
        extra = parameter[: _PARAMETER_LEN - 1].split()
        prefixes += extra[: MAX_PREFIXES - len(prefixes)]
    return prefixes


def parse_traffic(net_dev_text: str, parameter: Optional[str] = "") -> Optional[str]:
    """Sum the counters of interfaces matching the prefixes, or None when none match.

    The parameter adds whitespace separated prefixes to eth, em and en.
    """
    prefixes = _prefixes(parameter)
    # bytes in/out, packets in/out, errors in/out, drops in/out
    totals = [0] * 8
    matched = 0
    for line in net_dev_text.splitlines():
        if not any(prefix in line for prefix in prefixes):
            continue
        _, colon, rest = line.partition(":")
        if not colon:
            continue
        values = _scan(rest, 12)
        values += [0] * (12 - len(values))
        bytein, pktin, errin, drpin = values[0:4]
        byteout, pktout, errout, drpout = values[8:12]
        for index, value in enumerate((bytein, byteout, pktin, pktout, errin, drpin, errout, drpout)):
            totals[index] += value
        matched += 1
    if not matched:
        return None
    bytein, byteout, pktin, pktout, errin, drpin, errout, drpout = totals
    return f"{bytein},{byteout},{pktin},{pktout},{errin + errout},{drpin + drpout}"


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the traffic record below root, or None when unreadable or nothing matched."""
    try:
        text = (Path(root) / "proc/net/dev").read_text()
    except OSError:
        return None
    return parse_traffic(text, parameter)


MODULE = Module("traffic", "--traffic", USAGE, INFO, collect)