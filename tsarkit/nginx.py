"""Nginx and Tengine status page statistics."""

from __future__ import annotations

import functools
import os
import re
import socket
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence

from tsarkit.module import Bit, FieldInfo, Module, StatsOpt

USAGE = "    --nginx             nginx statistics"

INFO = (
    FieldInfo("accept", Bit.DETAIL, stats_opt=StatsOpt.SUB),
    FieldInfo("handle", Bit.DETAIL, stats_opt=StatsOpt.SUB),
    FieldInfo("  reqs", Bit.DETAIL, stats_opt=StatsOpt.SUB),
    FieldInfo("active", Bit.DETAIL),
    FieldInfo("  read", Bit.DETAIL),
    FieldInfo(" write", Bit.DETAIL),
    FieldInfo("  wait", Bit.DETAIL),
    FieldInfo("   qps", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("    rt", Bit.SUMMARY),
    FieldInfo("sslqps", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("spdyps", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  sslf", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("sslv3f", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo(" h2qps", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("sslhds", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
    FieldInfo("  sslk", Bit.SUMMARY, stats_opt=StatsOpt.SUB_INTER),
)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 80
DEFAULT_URI = "/nginx_status"
DEFAULT_SERVER_NAME = "status.localhost"
TIMEOUT = 10.0
_SUN_PATH_LEN = 108

_NUM = re.compile(r"\s*([+-]?\d+)")
_U64 = 1 << 64

_ACTIVE = "Active connections:"
_TENGINE_HEADER = "server accepts handled requests request_time"
_NGINX_HEADER = "server accepts handled requests"

# line prefix -> (sscanf-like template, fields filled in order)
_SIMPLE_LINES = (
    ("Server accepts:",
     "Server accepts: %d handled: %d requests: %d request_time: %d",
     ("naccept", "nhandled", "nrequest", "nrstime")),
    ("Reading:", "Reading: %d Writing: %d Waiting: %d",
     ("nreading", "nwriting", "nwaiting")),
    ("SSL:", "SSL: %d SPDY: %d", ("nssl", "nspdy")),
    ("HTTP2:", "HTTP2: %d", ("nhttp2",)),
    ("SSL_failed:", "SSL_failed: %d", ("nsslf",)),
    ("SSLv3_failed:", "SSLv3_failed: %d", ("nsslv3f",)),
    ("SSL_handshake:", "SSL_handshake: %d", ("nsslhds",)),
    ("SSL_keepalive_reqs:", "SSL_keepalive_reqs: %d", ("nsslk",)),
)

_FIELDS = (
    "naccept", "nhandled", "nrequest", "nactive", "nreading", "nwriting",
    "nwaiting", "nrstime", "nspdy", "nsslhds", "nssl", "nsslk", "nsslf",
    "nsslv3f", "nhttp2",
)

_RECORD_ORDER = (
    "naccept", "nhandled", "nrequest", "nactive", "nreading", "nwriting",
    "nwaiting", "nrequest", "nrstime", "nssl", "nspdy", "nsslf", "nsslv3f",
    "nhttp2", "nsslhds", "nsslk",
)


@dataclass(frozen=True)
class HostInfo:
    """Where the status page is fetched from."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    server_name: str = DEFAULT_SERVER_NAME
    uri: str = DEFAULT_URI


def _atoi(text: Optional[str]) -> int:
    match = _NUM.match(text or "")
    return int(match.group(1)) if match else 0


def host_info(environ: Mapping[str, str], parameter: Optional[str] = "") -> HostInfo:
    """Host settings from the NGX_TSAR_* variables; a non-zero parameter sets the port."""
    port_text = environ.get("NGX_TSAR_PORT")
    port = _atoi(port_text) if port_text is not None else DEFAULT_PORT
    override = _atoi(parameter)
    if override:
        port = override
    return HostInfo(
        host=environ.get("NGX_TSAR_HOST") or DEFAULT_HOST,
        port=port,
        server_name=environ.get("NGX_TSAR_SERVER_NAME") or DEFAULT_SERVER_NAME,
        uri=environ.get("NGX_TSAR_URI") or DEFAULT_URI,
    )


def build_request(info: HostInfo) -> str:
    """The HTTP request asking for the status page."""
    return (
        f"GET {info.uri} HTTP/1.0\r\n"
        "User-Agent: taobot\r\n"
        f"Host: {info.server_name}\r\n"
        "Accept:*/*\r\n"
        "Connection: Close\r\n\r\n"
    )


@functools.lru_cache(maxsize=None)
def _literal(text: str) -> re.Pattern[str]:
    return re.compile("".join(r"\s*" if ch.isspace() else re.escape(ch) for ch in text))


def _scanf(text: str, template: str) -> list[int]:
    """Numbers matched by a template of literals and %d, stopping at the first mismatch."""
    pieces = template.split("%d")
    values: list[int] = []
    pos = 0
    for index, literal in enumerate(pieces):
        match = _literal(literal).match(text, pos)
        if not match or index == len(pieces) - 1:
            break
        number = _NUM.match(text, match.end())
        if not number:
            break
        values.append(int(number.group(1)) % _U64)
        pos = number.end()
    return values


def _signed(value: int) -> int:
    return value - _U64 if value >= 1 << 63 else value


def parse_status(lines: Iterable[str]) -> Optional[str]:
    """Build the nginx record from status page lines, or None when no requests were seen."""
    stats = dict.fromkeys(_FIELDS, 0)
    found = False

    def assign(names: Sequence[str], values: list[int]) -> None:
        stats.update(zip(names, values))

    lines = iter(lines)
    for line in lines:
        if line.startswith(_ACTIVE):
            assign(("nactive",), _scanf(line[len(_ACTIVE) + 1:], "%d"))
            found = True
        elif line.startswith(_TENGINE_HEADER):
            following = next(lines, None)
            if following is not None and following.startswith(" "):
                assign(("naccept", "nhandled", "nrequest", "nrstime"),
                       _scanf(following[1:], "%d %d %d %d"))
                found = True
        elif line.startswith(_NGINX_HEADER):
            following = next(lines, None)
            if following is not None and following.startswith(" "):
                assign(("naccept", "nhandled", "nrequest"),
                       _scanf(following[1:], "%d %d %d"))
                found = True
        else:
            for prefix, template, names in _SIMPLE_LINES:
                if line.startswith(prefix):
                    assign(names, _scanf(line, template))
                    found = True
                    break
    if not found or stats["nrequest"] == 0:
        return None
    return ",".join(str(_signed(stats[name])) for name in _RECORD_ORDER)


def _rate(old: int, new: int, interval: int) -> float:
    return (new - old) / interval if new >= old else 0.0


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Counter deltas, current connection states, request rates and mean response time."""
    st = [0.0] * len(INFO)
    for index in range(3):
        st[index] = float(cur[index] - pre[index]) if cur[index] >= pre[index] else 0.0
    for index in range(3, 7):
        st[index] = float(cur[index])
    st[7] = _rate(pre[2], cur[2], interval)
    if cur[8] >= pre[8]:
        requests = cur[2] - pre[2]
        st[8] = (cur[8] - pre[8]) / requests if requests > 0 else 0.0
    for index in range(9, 16):
        st[index] = _rate(pre[index], cur[index], interval)
    return st


def _fetch(info: HostInfo) -> Optional[str]:
    if info.host.startswith("/"):
        family = socket.AF_UNIX
        address: object = info.host[: _SUN_PATH_LEN - 1]
    else:
        family = socket.AF_INET
        address = (info.host, info.port & 0xFFFF)
    try:
        sock = socket.socket(family, socket.SOCK_STREAM)
    except OSError:
        return None
    with sock:
        try:
            sock.settimeout(TIMEOUT)
            sock.connect(address)
            sock.sendall(build_request(info).encode("latin-1"))
        except (OSError, UnicodeEncodeError):
            return None
        chunks = []
        while True:
            try:
                data = sock.recv(4096)
            except OSError:
                break
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks).decode("latin-1")


def collect(parameter: str = "") -> Optional[str]:
    """Fetch the status page and build the record, or None when nothing usable came back."""
    text = _fetch(host_info(os.environ, parameter))
    if text is None:
        return None
    return parse_status(text.splitlines(keepends=True))


MODULE = Module("nginx", "--nginx", USAGE, INFO, collect, compute)