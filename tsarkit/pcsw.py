"""Context switches and process creation from /proc/stat."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --pcsw              Process (task) creation and context switch"

INFO = (
    FieldInfo(" cswch", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  proc", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
)

_UINT = re.compile(r"\s*\+?(\d+)")


def _first_uint(text: str, default: int) -> int:
    match = _UINT.match(text)
    return int(match.group(1)) if match else default


def parse_pcsw(stat_text: str) -> str:
    """Build the record: context switches, processes created."""
    context_switch = processes = 0
    for line in stat_text.splitlines():
        if line.startswith("ctxt "):
            context_switch = _first_uint(line[5:], context_switch)
        elif line.startswith("processes "):
            processes = _first_uint(line[10:], processes)
    return f"{context_switch},{processes}"


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the pcsw record below root, or None when unreadable."""
    try:
        text = (Path(root) / "proc/stat").read_text()
    except OSError:
        return None
    return parse_pcsw(text)


MODULE = Module("pcsw", "--pcsw", USAGE, INFO, collect)