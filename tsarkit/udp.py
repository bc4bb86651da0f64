"""UDP traffic counters from /proc/net/snmp."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --udp               UDP traffic     (v4)"

INFO = (
    FieldInfo("  idgm", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  odgm", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("noport", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("idmerr", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
)

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


def parse_udp(snmp_text: str) -> str:
    """Build the udp record: in datagrams, out datagrams, no port, in errors."""
    values: list[int] = []
    seen = False
    for line in snmp_text.splitlines():
        if line.startswith("Udp:"):
            if seen:
                values = _scan(line[4:], 4)
                break
            seen = True
    values += [0] * (4 - len(values))
    in_datagrams, no_ports, in_errors, out_datagrams = values
    return f"{in_datagrams},{out_datagrams},{no_ports},{in_errors}"


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the udp record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/net/snmp").read_text()
    except OSError:
        return None
    return parse_udp(text)


MODULE = Module("udp", "--udp", USAGE, INFO, collect)