"""Extended TCP connection data from /proc/net/snmp and /proc/net/netstat."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --tcpx              TCP connection data"

INFO = (
    FieldInfo(" recvq", Bit.DETAIL),
    FieldInfo(" sendq", Bit.DETAIL),
    FieldInfo("   est", Bit.DETAIL),
    FieldInfo(" twait", Bit.DETAIL),
    FieldInfo("fwait1", Bit.DETAIL),
    FieldInfo("fwait2", Bit.DETAIL),
    FieldInfo("  lisq", Bit.DETAIL),
    FieldInfo("lising", Bit.DETAIL),
    FieldInfo("lisove", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" cnest", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" ndrop", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" edrop", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" rdrop", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" pdrop", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" kdrop", Bit.DETAIL, stats_opt=StatsOpt.SUB_INTER),
)

_NUM = re.compile(r"\s*([+-]?\d+)")
_U64 = 1 << 64

# positions in the TcpExt values line
_LISTEN_OVERFLOWS = 19
_EMBRYONIC_DROP = 57
_REXMIT_DROP = 61


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
    seen = False
    for line in text.splitlines():
        if line.startswith(prefix):
            if seen:
                return line[len(prefix):]
            seen = True
    return None


def _at(values: list[int], index: int) -> int:
    return values[index] if index < len(values) else 0


def parse_tcpx(snmp_text: str, netstat_text: str) -> str:
    """Build the tcpx record from /proc/net/snmp and /proc/net/netstat contents."""
    ext = _second_line(netstat_text, "TcpExt:")
    ext_values = _scan(ext, _REXMIT_DROP + 1) if ext is not None else []
    listen_over = _at(ext_values, _LISTEN_OVERFLOWS)
    embryonic_drop = _at(ext_values, _EMBRYONIC_DROP)
    rexmit_drop = _at(ext_values, _REXMIT_DROP)

    tcp = _second_line(snmp_text, "Tcp:")
    tcp_values = _scan(tcp, 6) if tcp is not None else []
    active_open = _at(tcp_values, 4)
    passive_open = _at(tcp_values, 5)

    # queue and state counts are not gathered; they stay zero
    record = (
        0, 0, 0, 0, 0, 0, 0, 0,
        listen_over,
        active_open + passive_open,
        0,
        embryonic_drop,
        rexmit_drop,
        0,
        0,
    )
    return ",".join(str(v) for v in record)


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the tcpx record below root, or None when a file is missing."""
    base = Path(root) / "proc/net"
    try:
        with (base / "tcp").open("rb"):
            pass
        snmp_text = (base / "snmp").read_text()
        netstat_text = (base / "netstat").read_text()
    except OSError:
        return None
    return parse_tcpx(snmp_text, netstat_text)


MODULE = Module("tcpx", "--tcpx", USAGE, INFO, collect)