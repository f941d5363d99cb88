"""Base class for metric jobs."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from ..client import BeaconNodeClient
from ..metrics import MetricsSink
from ..types import ExporterError, JobStartupError, JobStatus

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class Job(ABC):
    """Base class for all jobs.

    A job registers its metrics on construction, runs ``setup()`` once when
    started and then calls ``tick()`` every ``INTERVAL`` seconds until the
    stop event is set. A failure in ``setup()`` is fatal for the job; a
    failure in ``tick()`` is logged and retried on the next interval.
    """

    # These should be overridden by subclasses
    NAME: str
    INTERVAL: float = 15.0

    def __init__(self, client: Optional[BeaconNodeClient], sink: MetricsSink):
        if not getattr(self, "NAME", None):
            raise NotImplementedError("Subclasses must define NAME")
        self.client = client
        self.sink = sink
        self.status = JobStatus.NOT_STARTED
        self.failure_reason: Optional[str] = None
        self.register_metrics()

    def register_metrics(self) -> None:
        """Register this job's metrics with the sink."""

    def setup(self) -> None:
        """One-off initialisation; raising here fails the job permanently."""

    @abstractmethod
    def tick(self) -> None:
        """Collect and publish one round of metrics."""

    def start(self, stop_event: threading.Event) -> None:
        """Run the job until ``stop_event`` is set.

        Raises:
            JobStartupError: if ``setup()`` fails. The job is left FAILED.
        """
        try:
            self.setup()
        except Exception as e:
            self.status = JobStatus.FAILED
            self.failure_reason = str(e) or type(e).__name__
            raise JobStartupError(self.NAME, self.failure_reason) from e

        self.status = JobStatus.RUNNING
        logger.info("Started %s job (interval %ss)", self.NAME, self.INTERVAL)

        while not stop_event.is_set():
            try:
                self.tick()
            except ExporterError as e:
                logger.warning("%s job: %s", self.NAME, e)
            except Exception:
                logger.exception("%s job tick failed", self.NAME)
            if stop_event.wait(self.INTERVAL):
                break

        self.status = JobStatus.STOPPED
        logger.debug("Stopped %s job", self.NAME)
