"""LVS connection, packet and byte counters."""

from __future__ import annotations

import os
import re
import shlex
import subprocess
from dataclasses import astuple, dataclass
from typing import Iterable, Optional

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --lvs               lvs connections and packets and bytes in/out"

LVS_PROC_STATS = "/proc/net/ip_vs_stats"
LVS_CONN_PROC_STATS = "/proc/net/ip_vs_conn_stats"
LVS_CMD = "sudo /usr/local/sbin/slb_admin -ln --total --dump"
LVS_CONN_CMD = "sudo /usr/local/sbin/appctl -csa"
LVS_CMD_PATH = "/usr/local/sbin/slb_admin"

INFO = (
    FieldInfo("  stat", Bit.DETAIL),
    FieldInfo(" conns", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" pktin", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("pktout", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" bytin", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("bytout", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" total", Bit.DETAIL),
    FieldInfo(" local", Bit.DETAIL),
    FieldInfo("  lact", Bit.DETAIL),
    FieldInfo("linact", Bit.DETAIL),
    FieldInfo("  sync", Bit.DETAIL),
    FieldInfo("  sact", Bit.DETAIL),
    FieldInfo("sinact", Bit.DETAIL),
    FieldInfo(" templ", Bit.DETAIL),
)

_U64 = 1 << 64
_LLONG_MAX = (1 << 63) - 1
_LLONG_MIN = -(1 << 63)
_DEC = re.compile(r"\s*([+-]?)(\d+)")
_HEX = re.compile(r"\s*([+-]?)(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]+)")

# line prefixes as compared by length in the command output
_NETFRAME_KEYS = (
    ("total_conns", "total_conns"),
    ("local_conns", "local_conns"),
    ("local_active_conns", "act_conns"),
    ("local_inactive_conns", "inact_conns"),
    ("sync_conns", "sync_conns"),
    ("sync_active_conn", "sync_act_conns"),
    ("sync_inactive_conn", "sync_inact_conns"),
    ("template_c", "template_conns"),
)

_TOTAL_ORDER = (
    "total_conns", "local_conns", "sync_conns", "act_conns",
    "sync_act_conns", "inact_conns", "sync_inact_conns",
)

_TRAFFIC = ("conns", "pktin", "pktout", "bytin", "bytout")


@dataclass
class LvsStats:
    """Counters gathered for one LVS sample."""

    stat: int = 0
    conns: int = 0
    pktin: int = 0
    pktout: int = 0
    bytin: int = 0
    bytout: int = 0
    total_conns: int = 0
    local_conns: int = 0
    act_conns: int = 0
    inact_conns: int = 0
    sync_conns: int = 0
    sync_act_conns: int = 0
    sync_inact_conns: int = 0
    template_conns: int = 0


def _strtoll(text: str, base: int) -> int:
    match = (_HEX if base == 16 else _DEC).match(text)
    if not match:
        return 0
    value = int(match.group(2), base)
    if match.group(1) == "-":
        value = -value
    return max(_LLONG_MIN, min(_LLONG_MAX, value))


def parse_lvs_stats(lines: Iterable[str], stats: LvsStats) -> None:
    """Add per-CPU (decimal) or total (hex) traffic counters into stats."""
    stats.stat = 1
    tokens = ["0"] * len(_TRAFFIC)
    for number, line in enumerate(lines, start=1):
        if number < 3:
            continue
        is_cpu = line.startswith("CPU")
        rest = line.partition(":")[2] if is_cpu else line
        found = rest.split()[: len(_TRAFFIC)]
        tokens[: len(found)] = found
        base = 10 if is_cpu else 16
        for name, token in zip(_TRAFFIC, tokens):
            setattr(stats, name, (getattr(stats, name) + _strtoll(token, base)) % _U64)
        if not is_cpu:
            break


def parse_conn_stats(lines: Iterable[str], has_netframe: bool, stats: LvsStats) -> None:
    """Fill the connection counters from the admin command or the proc file."""
    for line in lines:
        _, colon, rest = line.partition(":")
        if has_netframe:
            for prefix, name in _NETFRAME_KEYS:
                if line.startswith(prefix):
                    if colon:
                        setattr(stats, name, _strtoll(rest, 10) % _U64)
                    break
        elif line.startswith("PersistConns") and colon:
            stats.template_conns = _strtoll(rest, 10) % _U64
        elif line.startswith("TOTAL") and colon:
            tokens = rest.split()[: len(_TOTAL_ORDER)]
            tokens += ["0"] * (len(_TOTAL_ORDER) - len(tokens))
            for name, token in zip(_TOTAL_ORDER, tokens):
                setattr(stats, name, _strtoll(token, 10) % _U64)


def _signed(value: int) -> int:
    value %= _U64
    return value - _U64 if value >= 1 << 63 else value


def format_record(stats: LvsStats) -> str:
    """The lvs record: all fourteen counters in field order."""
    return ",".join(str(_signed(value)) for value in astuple(stats))


def _source_lines(command: str, path: str, has_netframe: bool) -> Optional[list[str]]:
    if has_netframe:
        try:
            result = subprocess.run(
                shlex.split(command), capture_output=True, text=True, check=False
            )
        except OSError:
            return []
        return result.stdout.splitlines(keepends=True)
    try:
        with open(path, encoding="latin-1") as source:
            return source.readlines()
    except OSError:
        return None


def collect(parameter: str = "") -> Optional[str]:
    """Gather the lvs record, or None when no traffic statistics are available."""
    has_netframe = os.access(LVS_CMD_PATH, os.X_OK)
    stats = LvsStats()
    lines = _source_lines(LVS_CMD, LVS_PROC_STATS, has_netframe)
    if lines is not None:
        parse_lvs_stats(lines, stats)
    lines = _source_lines(LVS_CONN_CMD, LVS_CONN_PROC_STATS, has_netframe)
    if lines is not None:
        parse_conn_stats(lines, has_netframe, stats)
    if stats.stat != 1:
        return None
    return format_record(stats)


MODULE = Module("lvs", "--lvs", USAGE, INFO, collect)