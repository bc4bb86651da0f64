import pytest

from tsarkit import io
from tsarkit.module import parse_record

SDA = (100, 10, 2000, 50, 200, 20, 4000, 80, 0, 120, 130)
SDA1 = (90, 9, 1800, 45, 150, 15, 3000, 60, 0, 100, 110)
DM0 = (300, 0, 6000, 70, 400, 0, 8000, 90, 0, 150, 160)
LOOP0 = (0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0)


def _line(major, minor, name, values):
    return f"{major:4d} {minor:7d} {name} " + " ".join(str(v) for v in values)


DISKSTATS = "\n".join(
    [
        _line(8, 0, "sda", SDA),
        _line(8, 1, "sda1", SDA1),
        _line(253, 0, "dm-0", DM0),
        _line(7, 0, "loop0", LOOP0),
    ]
)


def _expected(values):
    return list(values[:8]) + list(values[9:11])


def test_printable_scsi_disks_only():
    assert io.printable(8, 0)
    assert not any(io.printable(8, minor) for minor in range(1, 16))
    assert io.printable(8, 16)


def test_printable_ide_uses_wider_mask():
    assert io.printable(3, 64)
    assert not any(io.printable(3, minor) for minor in range(1, 64))


def test_printable_compaq_and_unknown():
    assert io.printable(104, 0)
    assert not io.printable(104, 3)
    assert all(io.printable(253, minor) for minor in range(20))


def test_parse_selects_disks_with_reads():
    items = parse_record(io.parse_diskstats(DISKSTATS, 64))
    assert list(items) == ["sda", "dm-0"]
    assert items["sda"][:10] == _expected(SDA)
    assert items["dm-0"][:10] == _expected(DM0)


def test_last_column_is_offset():
    record = io.parse_diskstats(DISKSTATS, 64)
    items = parse_record(record)
    assert items["sda"][10] == 0
    assert items["dm-0"][10] == record.index("dm-0")


def test_max_partitions_limits():
    items = parse_record(io.parse_diskstats(DISKSTATS, 1))
    assert list(items) == ["sda"]


def test_duplicate_devices_listed_once():
    text = DISKSTATS + "\n" + _line(8, 0, "sda", SDA)
    items = parse_record(io.parse_diskstats(text, 64))
    assert list(items) == ["sda", "dm-0"]


def test_old_partition_format():
    rd_ios, rd_sectors, wr_ios, wr_sectors = 5, 60, 7, 80
    text = _line(253, 5, "dm-5", (rd_ios, rd_sectors, wr_ios, wr_sectors))
    items = parse_record(io.parse_diskstats(text, 64))
    assert items["dm-5"] == [0, 0, rd_sectors, 0, 0, 0, wr_sectors, 0, 0, 0, 0]


def test_parse_empty():
    assert io.parse_diskstats("", 64) == ""


def test_compute_no_change():
    assert io.compute([0] * 11, [0] * 11, 1) == [0.0] * 17


def test_compute_counter_reset():
    st = io.compute([1] + [0] * 10, [0] * 11, 1)
    assert st[:11] == [-1.0] * 11
    assert len(st) == 17


def test_compute_rates():
    interval, rate = 4, 3
    cur = [0] * 11
    cur[0] = interval * rate
    cur[1] = interval * rate
    st = io.compute([0] * 11, cur, interval)
    assert st[0] == rate
    assert st[4] == rate
    assert st[2] == 50.0


def test_compute_util_capped():
    cur = [0] * 11
    cur[8] = 10**6
    assert io.compute([0] * 11, cur, 1)[16] == 100.0


def test_compute_queue_size_is_floored():
    cur = [0] * 11
    cur[9] = 1999
    assert io.compute([0] * 11, cur, 1)[11] == 1.0


def test_compute_wait_is_ticks_per_io():
    ios, ticks = 10, 70
    cur = [0] * 11
    cur[0] = ios
    cur[3] = ticks
    st = io.compute([0] * 11, cur, 1)
    assert st[13] == pytest.approx(ticks / ios)
    assert st[12] == st[13]


def test_collect_reads_root(tmp_path):
    (tmp_path / "proc").mkdir()
    (tmp_path / "proc/diskstats").write_text(DISKSTATS)
    assert io.collect("", tmp_path) == io.parse_diskstats(DISKSTATS, 64)
    assert list(parse_record(io.collect("1", tmp_path))) == ["sda"]


def test_collect_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        io.collect("", tmp_path)