from __future__ import annotations
import logging

from .job_base import Job

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class GeneralJob(Job):
    """Node version and peer counts."""

    NAME = "general"
    INTERVAL = 15.0

    def register_metrics(self) -> None:
        self.sink.gauge("node_version", "The version of the running beacon node.", ["version"])
        self.sink.gauge("peers", "The count of peers connected to the beacon node.", ["state"])

    def tick(self) -> None:
        version = self.client.node_version()
        self.sink.set("node_version", 1, version=version)

        for state, count in self.client.peer_count().items():
            self.sink.set("peers", count, state=state)
        logger.debug("general: version=%s", version)
