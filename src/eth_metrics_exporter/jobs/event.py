from __future__ import annotations
import logging
import threading
import time
from typing import Optional

from ..types import Event
from .job_base import Job

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class EventJob(Job):
    """Counts delivered events and tracks the time since the last one."""

    NAME = "event"
    INTERVAL = 1.0

    def __init__(self, client, sink, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self.last_event_time: Optional[float] = None
        super().__init__(client, sink)

    def register_metrics(self) -> None:
        self.sink.counter("event_count", "The count of beacon events received.", ["name"])
        self.sink.gauge("event_time_since_last_subscription_event_ms", "The amount of time since the last subscription event (in milliseconds).")

    def observe(self, event: Event) -> None:
        self.sink.inc("event_count", name=event.topic)
        with self._lock:
            self.last_event_time = self._clock()

    def tick(self) -> None:
        with self._lock:
            last = self.last_event_time
        if last is None:
            return
        self.sink.set("event_time_since_last_subscription_event_ms", (self._clock() - last) * 1000)
