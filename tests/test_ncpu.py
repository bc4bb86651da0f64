import math

import pytest

from tsarkit import ncpu
from tsarkit.module import parse_record

STAT = (
    "cpu  10 20 30 40 50 60 70 80 90 0\n"
    "cpu0 1 2 3 4 5 6 7 8 9 0\n"
    "cpu1 11 12 13 14 15 16 17 18 19 0\n"
    "intr 1\n"
)


def test_parse_ncpu_items():
    items = parse_record(ncpu.parse_ncpu(STAT))
    assert items == {
        "cpu0": [1, 3, 5, 6, 7, 4, 2, 8, 9],
        "cpu1": [11, 13, 15, 16, 17, 14, 12, 18, 19],
    }


def test_parse_ncpu_skips_total_line():
    assert "cpu=" not in ncpu.parse_ncpu(STAT)


def test_parse_ncpu_no_processors():
    assert ncpu.parse_ncpu("cpu  1 2 3\nintr 1\n") == ""


def test_compute_util_is_sum_of_busy():
    pre = [100, 50, 10, 5, 5, 800, 0, 0, 0]
    cur = [130, 70, 20, 8, 7, 900, 0, 0, 0]
    st = ncpu.compute(pre, cur, 1)
    assert sum(st[:5]) == pytest.approx(st[5])
    assert st[6:] == [0.0, 0.0, 0.0]


def test_compute_no_change_is_nan():
    sample = [1, 2, 3, 4, 5, 6, 7, 8, 9]
    st = ncpu.compute(sample, sample, 1)
    assert [math.isnan(value) for value in st[:6]] == [True] * 6
    assert st[6:] == [0.0, 0.0, 0.0]


def test_compute_keeps_decreased_column_unset():
    pre = [100, 50, 10, 5, 5, 800, 0, 0, 0]
    cur = [90, 70, 20, 8, 7, 900, 0, 0, 0]
    assert ncpu.compute(pre, cur, 1)[0] == 0.0


def test_collect_from_root(tmp_path):
    (tmp_path / "proc").mkdir()
    (tmp_path / "proc/stat").write_text(STAT)
    assert ncpu.collect("", tmp_path) == ncpu.parse_ncpu(STAT)


def test_collect_missing(tmp_path):
    assert ncpu.collect("", tmp_path) is None