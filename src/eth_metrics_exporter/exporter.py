"""Consensus node metrics: jobs, event subscription and their wiring."""
from __future__ import annotations
import logging
import threading
from typing import Any, Dict, List, Optional

from .client import BeaconNodeClient
from .jobs import BeaconJob, EventJob, ForksJob, GeneralJob, Job, SpecJob, SyncJob
from .metrics import MetricsSink
from .supervisor import JobSupervisor
from .watchdog import SubscriptionWatchdog

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

ROLE = "consensus"


def consensus_const_labels(node_name: str) -> Dict[str, str]:
    return {"ethereum_role": ROLE, "node_name": node_name}


class ConsensusExporter:
    """Runs the consensus jobs and keeps the event subscription alive.

    Events delivered by the watchdog go to the beacon job's handler and are
    counted by the event job.
    """

    def __init__(self, client: Optional[BeaconNodeClient], sink: MetricsSink):
        self.client = client
        self.sink = sink
        self.general = GeneralJob(client, sink)
        self.spec = SpecJob(client, sink)
        self.sync = SyncJob(client, sink)
        self.forks = ForksJob(client, sink)
        self.beacon = BeaconJob(client, sink)
        self.events = EventJob(client, sink)
        self.watchdog = SubscriptionWatchdog(client, handlers=[self.beacon.handle_event, self.events.observe])
        self.supervisor = JobSupervisor(
            self.jobs,
            tasks=[("subscription-watchdog", self.watchdog.run)],
        )

    @property
    def jobs(self) -> List[Job]:
        return [self.general, self.spec, self.sync, self.forks, self.beacon, self.events]

    def start_async(self, stop_event: threading.Event) -> None:
        """Start every job and the watchdog on background threads."""
        logger.info("Starting consensus metrics for %s", self.client.url if self.client else "(no node)")
        self.supervisor.start(stop_event)

    def status(self) -> Dict[str, Any]:
        return {
            "jobs": self.supervisor.statuses(),
            "subscription": self.watchdog.subscription.to_dict(),
        }
