"""Block device I/O performance from /proc/diskstats."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Sequence

from tsarkit.module import ITEM_SPLIT, Bit, FieldInfo, Merge, Module

USAGE = "    --io                Linux I/O performance"

MAX_PARTITIONS = 64
LEN_1M = 1048576
_NAME_LEN = 31

INFO = (
    FieldInfo(" rrqms", Bit.DETAIL, Merge.SUM),
    FieldInfo(" wrqms", Bit.DETAIL, Merge.SUM),
    FieldInfo(" %rrqm", Bit.DETAIL, Merge.AVG),
    FieldInfo(" %wrqm", Bit.DETAIL, Merge.AVG),
    FieldInfo("    rs", Bit.DETAIL, Merge.SUM),
    FieldInfo("    ws", Bit.DETAIL, Merge.SUM),
    FieldInfo(" rsecs", Bit.DETAIL, Merge.SUM),
    FieldInfo(" wsecs", Bit.DETAIL, Merge.SUM),
    FieldInfo("rqsize", Bit.DETAIL, Merge.AVG),
    FieldInfo("rarqsz", Bit.DETAIL, Merge.AVG),
    FieldInfo("warqsz", Bit.DETAIL, Merge.AVG),
    FieldInfo("qusize", Bit.DETAIL, Merge.AVG),
    FieldInfo(" await", Bit.DETAIL, Merge.AVG),
    FieldInfo("rawait", Bit.DETAIL, Merge.AVG),
    FieldInfo("wawait", Bit.DETAIL, Merge.AVG),
    FieldInfo(" svctm", Bit.DETAIL, Merge.AVG),
    FieldInfo("  util", Bit.SUMMARY, Merge.AVG),
)

_IDE_MAJORS = frozenset({3, 22, 33, 34, 56, 57, 88, 89, 90, 91})
_SCSI_MAJORS = frozenset({8, *range(65, 72), *range(128, 136)})
_COMPAQ_MAJORS = frozenset({*range(104, 112), *range(72, 80)})

_PRINT_DEVICE = True
_PRINT_PARTITION = False

_INT = re.compile(r"[+-]?\d+")
_UINT = re.compile(r"\+?(\d+)")
_ATOI = re.compile(r"\s*([+-]?\d+)")


def printable(major: int, minor: int) -> bool:
    """Whether a device is reported: whole disks of known families, anything else."""
    if major in _IDE_MAJORS:
        mask = 0x3F
    elif major in _SCSI_MAJORS or major in _COMPAQ_MAJORS:
        mask = 0x0F
    else:
        return True
    is_partition = bool(minor & mask)
    return _PRINT_PARTITION if is_partition else _PRINT_DEVICE


def _parse_line(line: str) -> Optional[tuple[int, int, str, list[int]]]:
    tokens = line.split()
    if len(tokens) < 3:
        return None
    if not (_INT.fullmatch(tokens[0]) and _INT.fullmatch(tokens[1])):
        return None
    values = []
    for token in tokens[3:]:
        match = _UINT.match(token)
        if not match:
            break
        values.append(int(match.group(1)))
        if match.end() != len(token):
            break
    return int(tokens[0]), int(tokens[1]), tokens[2][:_NAME_LEN], values


def _blkio(values: list[int]) -> Optional[list[int]]:
    if len(values) >= 11:
        # skip the in-flight counter between the write fields and ticks
        return values[:8] + values[9:11]
    if len(values) == 4:
        # partitions on old kernels carry only sector counts
        _, rd_sectors, _, wr_sectors = values
        return [0, 0, rd_sectors, 0, 0, 0, wr_sectors, 0, 0, 0]
    return None


def parse_diskstats(text: str, max_partitions: int = MAX_PARTITIONS) -> Optional[str]:
    """Build a record with one item per reported device, or None when too long."""
    limit = max_partitions if 0 < max_partitions < MAX_PARTITIONS else MAX_PARTITIONS
    parsed = [entry for entry in map(_parse_line, text.splitlines()) if entry]

    partitions: dict[tuple[int, int], str] = {}
    for major, minor, name, values in parsed:
        if not values:
            continue
        if len(partitions) >= limit:
            break
        key = (major, minor)
        if key not in partitions and values[0] and printable(major, minor):
            partitions[key] = name

    stats = {key: [0] * 10 for key in partitions}
    for major, minor, _, values in parsed:
        blkio = _blkio(values)
        if blkio is not None and (major, minor) in stats:
            stats[(major, minor)] = blkio

    items = []
    pos = 0
    for key, name in partitions.items():
        item = f"{name}=" + ",".join(str(v) for v in stats[key]) + f",{pos}" + ITEM_SPLIT
        items.append(item)
        pos += len(item)
        if pos >= LEN_1M - 1:
            return None
    return "".join(items)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """iostat-style rates, sizes, waits and utilisation for one device."""
    if any(new < old for old, new in zip(pre[:11], cur[:11])):
        return [-1.0] * 11 + [0.0] * 6
    (rd_ios, rd_merges, rd_sectors, rd_ticks,
     wr_ios, wr_merges, wr_sectors, wr_ticks,
     ticks, aveq) = (new - old for old, new in zip(pre[:10], cur[:10]))
    n_ios = rd_ios + wr_ios
    util = min(ticks / (interval * 10.0), 100.0)
    return [
        rd_merges / interval,
        wr_merges / interval,
        _ratio(rd_merges * 100.0, rd_merges + rd_ios),
        _ratio(wr_merges * 100.0, wr_merges + wr_ios),
        rd_ios / interval,
        wr_ios / interval,
        rd_sectors / interval,
        wr_sectors / interval,
        _ratio(rd_sectors + wr_sectors, n_ios * 2),
        _ratio(rd_sectors, rd_ios * 2),
        _ratio(wr_sectors, wr_ios * 2),
        float(aveq // (interval * 1000)),
        _ratio(rd_ticks + wr_ticks, n_ios),
        _ratio(rd_ticks, rd_ios),
        _ratio(wr_ticks, wr_ios),
        _ratio(ticks, n_ios),
        util,
    ]


def _atoi(text: str) -> int:
    match = _ATOI.match(text or "")
    return int(match.group(1)) if match else 0


def collect(parameter: str = "", root: str | os.PathLike = "/") -> Optional[str]:
    """Read the io record below root; the parameter limits the number of devices."""
    path = Path(root) / "proc/diskstats"
    try:
        text = path.read_text()
    except OSError as exc:
        raise OSError(f"iostat: Can't open {path}: {exc}") from exc
    return parse_diskstats(text, _atoi(parameter) or MAX_PARTITIONS)


MODULE = Module("io", "--io", USAGE, INFO, collect, compute)