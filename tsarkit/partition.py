"""Disk and partition usage of mounted block filesystems."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from tsarkit.module import ITEM_SPLIT, Bit, FieldInfo, Merge, Module

USAGE = "    --partition         Disk and partition usage"

MAXPART = 32
LEN_1M = 1048576
_U64 = 1 << 64

INFO = (
    FieldInfo(" bfree", Bit.DETAIL, Merge.AVG),
    FieldInfo(" bused", Bit.DETAIL, Merge.SUM),
    FieldInfo(" btotl", Bit.DETAIL, Merge.SUM),
    FieldInfo("  util", Bit.DETAIL, Merge.SUM),
    FieldInfo(" ifree", Bit.DETAIL, Merge.SUM),
    FieldInfo(" itotl", Bit.DETAIL, Merge.SUM),
    FieldInfo(" iutil", Bit.DETAIL, Merge.SUM),
)

_ESCAPE = re.compile(r"\\(040|011|012|134|\\)")
_ESCAPES = {"040": " ", "011": "\t", "012": "\n", "134": "\\", "\\": "\\"}


@dataclass(frozen=True)
class FsStats:
    """Block and inode counts of one filesystem."""

    bsize: int = 0
    blocks: int = 0
    bfree: int = 0
    bavail: int = 0
    itotal: int = 0
    ifree: int = 0


def _unescape(field: str) -> str:
    return _ESCAPE.sub(lambda m: _ESCAPES[m.group(1)], field)


def block_mounts(mtab_text: str) -> list[str]:
    """Mount points of block filesystems in a mount table, at most MAXPART."""
    mounts = []
    for line in mtab_text.splitlines():
        stripped = line.lstrip()
        if not stripped or stripped.startswith("#"):
            continue
        fields = stripped.split()
        if len(fields) < 2:
            continue
        fsname, directory = _unescape(fields[0]), _unescape(fields[1])
        if not fsname.startswith("/"):
            continue
        if len(mounts) >= MAXPART:
            break
        mounts.append(directory)
    return mounts


def format_partition(mount_point: str, stats: FsStats) -> str:
    """One record item in kB blocks, or "" when the block size is not whole kB."""
    if stats.bsize <= 0 or stats.bsize % 1024:
        return ""
    k = stats.bsize // 1024
    return (
        f"{mount_point}={stats.bsize // k},{stats.bfree * k},{stats.blocks * k},"
        f"{stats.bavail * k},{stats.ifree},{stats.itotal}" + ITEM_SPLIT
    )


def compute(pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
    """Free, used and total bytes, block util (rounded up) and inode usage."""
    bsize, bfree, blocks, bavail, ifree, itotal = cur[:6]
    used = (blocks - bfree) % _U64
    nonroot_total = (used + bavail) % _U64
    st = [0.0] * 7
    st[0] = float(bavail * bsize)
    st[1] = float(used * bsize)
    st[2] = float(blocks * bsize)
    if nonroot_total:
        st[3] = used * 100.0 / nonroot_total + ((used * 100) % nonroot_total != 0)
    st[3] = min(st[3], 100.0)
    st[4] = float(ifree)
    st[5] = float(itotal)
    if itotal >= ifree and itotal:
        st[6] = (itotal - ifree) * 100.0 / itotal
    return st


def _read_fs(path: str) -> FsStats:
    fs = os.statvfs(path)
    return FsStats(fs.f_bsize, fs.f_blocks, fs.f_bfree, fs.f_bavail, fs.f_files, fs.f_ffree)


def collect(parameter: str = "", mtab_path: str | os.PathLike = "/etc/mtab") -> Optional[str]:
    """Read usage of every block filesystem in the mount table, or None when unreadable."""
    try:
        with open(mtab_path, encoding="utf-8", errors="replace") as mtab:
            mounts = block_mounts(mtab.read())
    except OSError:
        return None
    stats = FsStats()
    items = []
    length = 0
    for mount_point in mounts:
        # a mount that cannot be queried reports the previous filesystem's figures
        try:
            stats = _read_fs(mount_point)
        except OSError:
            pass
        item = format_partition(mount_point, stats)
        items.append(item)
        length += len(item)
        if length >= LEN_1M - 1:
            return None
    return "".join(items)


MODULE = Module("partition", "--partition", USAGE, INFO, collect, compute)