"""Module descriptions and record handling shared by every collector."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

ITEM_SPLIT = ";"
DATA_SPLIT = ","


class Bit(enum.IntEnum):
    """Display level of a column."""

    HIDE = 0
    DETAIL = 1
    SUMMARY = 2
    SPEC = 3


class Merge(enum.IntEnum):
    """How the values of several items are merged into one."""

    NULL = 0
    SUM = 1
    AVG = 2


class StatsOpt(enum.IntEnum):
    """How a column is derived from two successive samples."""

    NULL = 0
    SUB = 1
    SUB_INTER = 2


@dataclass(frozen=True)
class FieldInfo:
    """Description of one output column."""

    header: str
    summary_bit: Bit = Bit.DETAIL
    merge_mode: Merge = Merge.NULL
    stats_opt: StatsOpt = StatsOpt.NULL


Collector = Callable[[str], Optional[str]]
Computer = Callable[[Sequence[int], Sequence[int], int], Sequence[float]]


def parse_record(record: str) -> dict[str, list[int]]:
    """Split a record into its items.

    A plain record such as ``"1,2,3"`` yields one item named ``""``;
    a multi-item record such as ``"sda=1,2;sdb=3,4;"`` yields one item per name.
    """
    items: dict[str, list[int]] = {}
    for item in record.split(ITEM_SPLIT):
        item = item.strip()
        if not item:
            continue
        name, sep, data = item.partition("=")
        if not sep:
            name, data = "", item
        try:
            items[name] = [int(value) for value in data.split(DATA_SPLIT)]
        except ValueError as exc:
            raise ValueError(f"malformed record item {item!r}") from exc
    return items


@dataclass
class Module:
    """A statistics module: how to collect a record and how to turn samples into values."""

    name: str
    opt: str
    usage: str
    info: tuple[FieldInfo, ...]
    collector: Collector
    computer: Optional[Computer] = None
    parameter: str = ""

    def __post_init__(self) -> None:
        self.info = tuple(self.info)

    @property
    def n_col(self) -> int:
        return len(self.info)

    def collect(self, parameter: Optional[str] = None) -> Optional[str]:
        """Collect one record, or None when nothing could be read."""
        return self.collector(self.parameter if parameter is None else parameter)

    def compute(self, pre: Sequence[int], cur: Sequence[int], interval: int) -> list[float]:
        """Derive the displayed values from the previous and current samples."""
        if len(pre) != self.n_col or len(cur) != self.n_col:
            raise ValueError(
                f"{self.name}: expected {self.n_col} columns, "
                f"got {len(pre)} and {len(cur)}"
            )
        if self.computer is not None:
            return [float(value) for value in self.computer(pre, cur, interval)]
        return [
            _default_value(field.stats_opt, old, new, interval)
            for field, old, new in zip(self.info, pre, cur)
        ]


def _default_value(opt: StatsOpt, old: int, new: int, interval: int) -> float:
    if opt is StatsOpt.NULL:
        return float(new)
    if new < old:
        return -1.0
    if opt is StatsOpt.SUB:
        return float(new - old)
    return (new - old) / interval