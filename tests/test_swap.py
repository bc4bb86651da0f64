import math

import pytest

from tsarkit import swap
from tsarkit.module import parse_record

PSWPIN, PSWPOUT, TOTAL, FREE = 42, 17, 4096, 1024

VMSTAT = f"nr_free_pages 1\npswpin {PSWPIN}\npswpout {PSWPOUT}\npgpgin 9\n"
MEMINFO = f"MemTotal: 100 kB\nSwapTotal:  {TOTAL} kB\nSwapFree:   {FREE} kB\n"


def test_parse_swap_columns():
    values = parse_record(swap.parse_swap(VMSTAT, MEMINFO))[""]
    assert values[:2] == [PSWPIN, PSWPOUT]
    assert values[2] == TOTAL * 1024
    assert values[3] == FREE * 1024


def test_parse_swap_empty():
    assert parse_record(swap.parse_swap("", ""))[""] == [0, 0, 0, 0]


def test_compute_rates():
    interval, rate_in, rate_out = 5, 3, 7
    pre = [100, 200, 10, 10]
    cur = [100 + interval * rate_in, 200 + interval * rate_out, 10, 10]
    st = swap.compute(pre, cur, interval)
    assert st[0] == rate_in
    assert st[1] == rate_out


def test_compute_counter_reset_gives_zero():
    st = swap.compute([10, 10, 1, 1], [5, 5, 1, 1], 1)
    assert st[:2] == [0.0, 0.0]


def test_compute_util_bounds():
    assert swap.compute([0] * 4, [0, 0, 1000, 1000], 1)[3] == 0.0
    assert swap.compute([0] * 4, [0, 0, 1000, 0], 1)[3] == 100.0


def test_compute_util_matches_record():
    cur = parse_record(swap.parse_swap(VMSTAT, MEMINFO))[""]
    st = swap.compute(cur, cur, 1)
    assert st[2] == cur[2]
    assert st[3] == pytest.approx(100.0 - FREE * 100.0 / TOTAL)


def test_compute_no_swap_is_nan():
    st = swap.compute([0] * 4, [0] * 4, 1)
    assert st[:3] == [0.0, 0.0, 0.0]
    assert [math.isnan(value) for value in st] == [False, False, False, True]


def test_collect_reads_root(tmp_path):
    (tmp_path / "proc").mkdir()
    (tmp_path / "proc/vmstat").write_text(VMSTAT)
    (tmp_path / "proc/meminfo").write_text(MEMINFO)
    assert swap.collect("", tmp_path) == swap.parse_swap(VMSTAT, MEMINFO)


def test_collect_missing_meminfo(tmp_path):
    (tmp_path / "proc").mkdir()
    (tmp_path / "proc/vmstat").write_text(VMSTAT)
    assert swap.collect("", tmp_path) is None