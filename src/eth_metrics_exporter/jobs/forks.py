from __future__ import annotations
import logging
from typing import Any, Dict, List, Tuple

from .job_base import Job

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

FORK_EPOCH_SUFFIX = "_FORK_EPOCH"
# Spec value used for forks that are not scheduled
FAR_FUTURE_EPOCH = 2 ** 64 - 1


def fork_epochs(spec: Dict[str, Any]) -> List[Tuple[str, int]]:
    """Return (fork_name, epoch) pairs from a chain spec, ordered by epoch."""
    forks = [("phase0", 0)]
    for key, value in spec.items():
        if not key.endswith(FORK_EPOCH_SUFFIX):
            continue
        try:
            forks.append((key[: -len(FORK_EPOCH_SUFFIX)].lower(), int(value)))
        except (TypeError, ValueError):
            logger.debug("forks: ignoring %s=%r", key, value)
    return sorted(forks, key=lambda f: f[1])


class ForksJob(Job):
    """Fork schedule and the currently active fork."""

    NAME = "fork"
    INTERVAL = 60.0

    def register_metrics(self) -> None:
        self.sink.gauge("fork_epoch", "The epoch for the fork.", ["fork"])
        self.sink.gauge("fork_activated", "The activation status of the fork (1 for activated).", ["fork"])
        self.sink.gauge("fork_current", "The current fork.", ["fork"])

    def tick(self) -> None:
        spec = self.client.spec()
        slots_per_epoch = int(spec.get("SLOTS_PER_EPOCH", 32)) or 32
        head_slot = int(self.client.syncing().get("head_slot", 0))
        current_epoch = head_slot // slots_per_epoch

        forks = fork_epochs(spec)
        current = None
        for name, epoch in forks:
            if epoch != FAR_FUTURE_EPOCH:
                self.sink.set("fork_epoch", epoch, fork=name)
            activated = epoch <= current_epoch
            self.sink.set("fork_activated", 1 if activated else 0, fork=name)
            if activated:
                current = name

        for name, _ in forks:
            self.sink.set("fork_current", 1 if name == current else 0, fork=name)
