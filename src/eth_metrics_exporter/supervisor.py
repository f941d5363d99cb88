"""Fire-and-forget startup of jobs and background loops."""
from __future__ import annotations
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .jobs import Job
from .types import JobStartupError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Task = Tuple[str, Callable[[threading.Event], None]]


class JobSupervisor:
    """Starts every job on its own thread.

    A job that fails to start is logged and left inert; it is not retried
    and never affects the other jobs. Extra ``tasks`` are (name, target)
    pairs run the same way, e.g. the subscription watchdog loop.
    """

    def __init__(self, jobs: Sequence[Job], tasks: Sequence[Task] = ()):
        self.jobs: List[Job] = list(jobs)
        self.tasks: List[Task] = list(tasks)
        self.threads: List[threading.Thread] = []

    def start(self, stop_event: threading.Event) -> List[threading.Thread]:
        for job in self.jobs:
            self._spawn(f"job-{job.NAME}", self._run_job, job, stop_event)
        for name, target in self.tasks:
            self._spawn(name, self._run_task, name, target, stop_event)
        return self.threads

    def _spawn(self, name: str, target, *args) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self.threads.append(thread)
        thread.start()

    @staticmethod
    def _run_job(job: Job, stop_event: threading.Event) -> None:
        try:
            job.start(stop_event)
        except JobStartupError as e:
            logger.error("Failed to start %s metrics: %s", job.NAME, e.reason)
        except Exception:
            logger.exception("%s metrics stopped unexpectedly", job.NAME)

    @staticmethod
    def _run_task(name: str, target: Callable[[threading.Event], None], stop_event: threading.Event) -> None:
        try:
            target(stop_event)
        except Exception:
            logger.exception("%s stopped unexpectedly", name)

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self.threads:
            thread.join(timeout)

    def statuses(self) -> Dict[str, str]:
        return {job.NAME: job.status.value for job in self.jobs}
