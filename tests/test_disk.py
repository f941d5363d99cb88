from __future__ import annotations
import os
import threading
from unittest.mock import patch

from eth_metrics_exporter.disk import DiskUsage, disk_used
from eth_metrics_exporter.metrics import MetricsSink

_real_scandir = os.scandir


def _size(path) -> int:
    return os.lstat(path).st_size


def _make_tree(root):
    (root / "a.bin").write_bytes(b"x" * 10)
    (root / "b").mkdir()
    (root / "b" / "c.bin").write_bytes(b"y" * 5)


def test_directory_size_includes_nested_files(tmp_path):
    _make_tree(tmp_path)
    usage = DiskUsage(MetricsSink("test"), [str(tmp_path)]).get_usage()

    assert len(usage) == 1
    assert usage[0].path == str(tmp_path)
    assert usage[0].size_bytes == 15 + _size(tmp_path) + _size(tmp_path / "b")


def test_file_root_is_its_own_size(tmp_path):
    target = tmp_path / "chain.db"
    target.write_bytes(b"z" * 42)
    usage = DiskUsage(MetricsSink("test"), [str(target)]).get_usage()
    assert usage[0].size_bytes == 42


def test_missing_path_is_skipped(tmp_path):
    exists = tmp_path / "exists"
    exists.mkdir()
    missing = tmp_path / "missing"

    usage = DiskUsage(MetricsSink("test"), [str(exists), str(missing)]).get_usage()

    assert [record.path for record in usage] == [str(exists)]


def test_results_keep_input_order(tmp_path):
    paths = []
    for name in ("zeta", "alpha", "mid"):
        (tmp_path / name).mkdir()
        paths.append(str(tmp_path / name))

    usage = DiskUsage(MetricsSink("test"), paths).get_usage()
    assert [record.path for record in usage] == paths


def test_unreadable_subdirectory_keeps_partial_size(tmp_path):
    (tmp_path / "a.bin").write_bytes(b"x" * 8)
    locked = tmp_path / "locked"
    locked.mkdir()
    (locked / "hidden.bin").write_bytes(b"h" * 100)

    def scandir(path):
        if os.fspath(path) == str(locked):
            raise PermissionError(13, "Permission denied", str(locked))
        return _real_scandir(path)

    with patch("eth_metrics_exporter.disk.os.scandir", side_effect=scandir):
        usage = DiskUsage(MetricsSink("test"), [str(tmp_path)]).get_usage()

    assert len(usage) == 1
    assert usage[0].size_bytes >= 8
    assert usage[0].size_bytes == 8 + _size(tmp_path) + _size(locked)


class _BrokenListing:
    """Yields the readable entries of a directory, then fails."""

    def __init__(self, path, keep):
        with _real_scandir(path) as entries:
            self._entries = [e for e in entries if e.name in keep]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def __iter__(self):
        yield from self._entries
        raise OSError(5, "Input/output error")


def test_listing_failure_part_way_counts_what_was_read(tmp_path):
    (tmp_path / "a.bin").write_bytes(b"x" * 8)
    (tmp_path / "z.bin").write_bytes(b"x" * 1000)

    def scandir(path):
        if os.fspath(path) == str(tmp_path):
            return _BrokenListing(path, keep={"a.bin"})
        return _real_scandir(path)

    with patch("eth_metrics_exporter.disk.os.scandir", side_effect=scandir):
        size = disk_used(str(tmp_path), os.lstat(tmp_path))

    assert size == 8 + _size(tmp_path)


def test_symlinks_are_not_followed(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "big.bin").write_bytes(b"b" * 4096)
    root = tmp_path / "root"
    root.mkdir()
    os.symlink(outside, root / "link")
    os.symlink(root, root / "loop")

    usage = DiskUsage(MetricsSink("test"), [str(root)]).get_usage()

    assert usage[0].size_bytes == _size(root) + _size(root / "link") + _size(root / "loop")


def test_usage_is_published_per_directory(tmp_path):
    _make_tree(tmp_path)
    sink = MetricsSink("test")
    usage = DiskUsage(sink, [str(tmp_path)]).get_usage()

    value = sink.registry.get_sample_value("test_disk_usage_bytes", {"directory": str(tmp_path)})
    assert value == usage[0].size_bytes


def test_start_collects_until_stopped(tmp_path):
    stop_event = threading.Event()
    disk = DiskUsage(MetricsSink("test"), [str(tmp_path)])

    def collect_once(*args, **kwargs):
        stop_event.set()
        return []

    with patch.object(DiskUsage, "get_usage", side_effect=collect_once) as mock_usage:
        disk.start(stop_event)

    assert mock_usage.call_count == 1


def test_start_survives_collection_errors(tmp_path):
    stop_event = threading.Event()
    disk = DiskUsage(MetricsSink("test"), [str(tmp_path)], interval=0)
    calls = []

    def flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("transient")
        stop_event.set()
        return []

    with patch.object(DiskUsage, "get_usage", side_effect=flaky):
        disk.start(stop_event)

    assert len(calls) == 2
