from __future__ import annotations
import logging

from .job_base import Job

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class SyncJob(Job):
    """Sync status of the beacon node."""

    NAME = "sync"
    INTERVAL = 5.0

    def register_metrics(self) -> None:
        self.sink.gauge("sync_percentage", "How synced the node is with the network (0-100%).")
        self.sink.gauge("sync_estimated_highest_slot", "The estimated highest slot of the network.")
        self.sink.gauge("sync_head_slot", "The current slot of the node.")
        self.sink.gauge("sync_distance", "The sync distance of the node.")
        self.sink.gauge("sync_is_syncing", "1 if the node is in syncing state.")

    def tick(self) -> None:
        status = self.client.syncing()
        head = int(status.get("head_slot", 0))
        distance = int(status.get("sync_distance", 0))
        highest = head + distance

        self.sink.set("sync_head_slot", head)
        self.sink.set("sync_distance", distance)
        self.sink.set("sync_estimated_highest_slot", highest)
        self.sink.set("sync_is_syncing", 1 if status.get("is_syncing") else 0)
        self.sink.set("sync_percentage", (head / highest * 100) if highest else 0)
