"""Periodic recursive disk usage of configured directories."""
from __future__ import annotations
import logging
import os
import stat
import threading
from typing import Iterable, List, Optional

from .metrics import MetricsSink
from .types import PathError, UsageRecord

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_INTERVAL = 60.0


def disk_used(path: str, st: os.stat_result) -> int:
    """Return the size of ``path`` including everything below it.

    Sizes come from link metadata, so symlinks are counted as links and never
    followed. A directory that cannot be listed (or stops listing part way)
    contributes its own size plus whatever was summed before the failure.
    """
    size = st.st_size
    if not stat.S_ISDIR(st.st_mode):
        return size

    pending = [path]
    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    if entry.name in (".", ".."):
                        continue
                    try:
                        entry_st = entry.stat(follow_symlinks=False)
                    except OSError as e:
                        logger.warning("Failed to stat %s: %s", entry.path, e)
                        continue
                    size += entry_st.st_size
                    if stat.S_ISDIR(entry_st.st_mode):
                        pending.append(entry.path)
        except OSError as e:
            logger.warning("Failed to read %s, counting partial usage: %s", current, PathError(current, e))
    return size


class DiskUsage:
    """Measures the configured directories on a fixed schedule.

    Args:
        sink: Metrics sink receiving ``disk_usage_bytes{directory=...}``.
        directories: Root paths to measure.
        interval: Seconds between collections.
    """

    def __init__(self, sink: MetricsSink, directories: Iterable[str], interval: float = DEFAULT_INTERVAL):
        self.sink = sink
        self.directories: List[str] = list(directories)
        self.interval = interval
        self.last_usage: List[UsageRecord] = []
        self.sink.gauge("disk_usage_bytes", "How large the directory is (in bytes).", ["directory"])

    def get_usage(self, directories: Optional[Iterable[str]] = None) -> List[UsageRecord]:
        """Measure each directory and publish one record per success.

        Records keep the input order. A directory that cannot be stat'ed is
        logged and left out; nothing is raised to the caller.
        """
        directories = self.directories if directories is None else list(directories)
        usage: List[UsageRecord] = []

        for directory in directories:
            try:
                st = os.lstat(directory)
            except OSError as e:
                logger.warning("Directory does not exist or is not accessible: %s", PathError(directory, e))
                continue
            usage.append(UsageRecord(path=directory, size_bytes=disk_used(directory, st)))

        for record in usage:
            self.sink.set("disk_usage_bytes", record.size_bytes, directory=record.path)

        self.last_usage = usage
        return usage

    def start(self, stop_event: threading.Event) -> None:
        """Collect every ``interval`` seconds until ``stop_event`` is set."""
        if not self.directories:
            logger.info("No directories configured, disk usage collection disabled")
            return
        logger.info("Starting disk usage collection for %s", ", ".join(self.directories))
        while not stop_event.is_set():
            try:
                self.get_usage()
            except Exception:
                logger.exception("Failed to get disk usage")
            if stop_event.wait(self.interval):
                break
