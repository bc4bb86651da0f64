"""Per-interface network traffic from /proc/net/dev."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from tsarkit.module import ITEM_SPLIT, Bit, FieldInfo, Merge, Module, StatsOpt

USAGE = "    --pernic            Net pernic statistics"

MAX_NICS = 8
LEN_1M = 1048576

INFO = (
    FieldInfo(" bytin", Bit.SUMMARY, Merge.SUM, StatsOpt.SUB_INTER),
    FieldInfo("bytout", Bit.SUMMARY, Merge.SUM, StatsOpt.SUB_INTER),
    FieldInfo(" pktin", Bit.DETAIL, Merge.SUM, StatsOpt.SUB_INTER),
    FieldInfo("pktout", Bit.DETAIL, Merge.SUM, StatsOpt.SUB_INTER),
)

# the name starts at the first lower-case letter after some other characters
_NAME = re.compile(r"[^a-z]+([a-z][^:]*):")
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


def parse_pernic(net_dev_text: str) -> Optional[str]:
    """Build a record with one item per interface that has received bytes.

    At most MAX_NICS + 1 interfaces are reported; None when the record grows too long.
    """
    items = []
    length = 0
    for line in net_dev_text.splitlines():
        if ":" not in line:
            continue
        match = _NAME.match(line)
        if not match:
            continue
        values = _scan(line[match.end():], 10)
        values += [0] * (10 - len(values))
        bytein, pktin, byteout, pktout = values[0], values[1], values[8], values[9]
        if bytein == 0:
            continue
        item = f"{match.group(1)}={bytein},{byteout},{pktin},{pktout}" + ITEM_SPLIT
        items.append(item)
        length += len(item)
        if length >= LEN_1M - 1:
            return None
        if len(items) > MAX_NICS:
            break
    return "".join(items)


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the pernic record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/net/dev").read_text()
    except OSError:
        return None
    return parse_pernic(text)


MODULE = Module("pernic", "--pernic", USAGE, INFO, collect)