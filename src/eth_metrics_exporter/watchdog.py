"""Event subscription lifecycle: subscribe, detect staleness, resubscribe."""
from __future__ import annotations
import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from .client import BeaconNodeClient
from .types import Event, SubscriptionError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

POLL_INTERVAL = 60.0
STALE_AFTER = 300.0
# Never subscribed, whatever the node advertises
EXCLUDED_TOPICS: FrozenSet[str] = frozenset({"contribution_and_proof"})

EventHandler = Callable[[Event], None]


class SubscriptionState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBED = "subscribed"


def select_topics(supported: Dict[str, bool], excluded: Iterable[str] = EXCLUDED_TOPICS) -> FrozenSet[str]:
    """Return every topic advertised as supported, minus the excluded ones."""
    excluded = frozenset(excluded)
    return frozenset(topic for topic, ok in supported.items() if ok and topic not in excluded)


class EventSubscription:
    """State of the single live subscription.

    ``state``, ``topics`` and ``stream`` are only changed by the watchdog
    thread. ``last_event_at`` is also advanced from the delivery callback,
    so it is guarded by a lock and never moves backwards.
    """

    def __init__(self):
        self.state = SubscriptionState.UNSUBSCRIBED
        self.topics: FrozenSet[str] = frozenset()
        self.stream: Any = None
        self.generation = 0
        self._last_event_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def last_event_at(self) -> Optional[float]:
        with self._lock:
            return self._last_event_at

    def touch(self, ts: float) -> None:
        with self._lock:
            if self._last_event_at is None or ts > self._last_event_at:
                self._last_event_at = ts

    def mark_subscribed(self, topics: FrozenSet[str], stream: Any, now: float) -> int:
        self.generation += 1
        self.state = SubscriptionState.SUBSCRIBED
        self.topics = topics
        self.stream = stream
        with self._lock:
            self._last_event_at = now
        return self.generation

    def mark_unsubscribed(self) -> Any:
        """Drop the subscription and return the stream it held, if any."""
        stream, self.stream = self.stream, None
        self.state = SubscriptionState.UNSUBSCRIBED
        self.generation += 1
        return stream

    def is_stale(self, now: float, threshold: float) -> bool:
        if self.state is not SubscriptionState.SUBSCRIBED:
            return False
        last = self.last_event_at
        return last is not None and (now - last) > threshold

    def to_dict(self) -> Dict[str, Any]:
        last = self.last_event_at
        return {
            "state": self.state.value,
            "topics": sorted(self.topics),
            "last_event_at": (
                datetime.fromtimestamp(last, tz=timezone.utc).isoformat() if last is not None else None
            ),
        }


class SubscriptionWatchdog:
    """Keeps one event subscription alive against a beacon node.

    Every ``poll_interval`` seconds the watchdog drops a subscription that has
    been silent for longer than ``stale_after`` seconds, and (re)subscribes
    when there is none. Failed attempts are retried on the next tick with no
    backoff. Delivered events are passed, in order, to each of ``handlers``.

    Args:
        client: Node client, or None to never subscribe.
        handlers: Callables invoked with every delivered Event.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        client: Optional[BeaconNodeClient],
        handlers: Sequence[EventHandler] = (),
        clock: Callable[[], float] = time.time,
        poll_interval: float = POLL_INTERVAL,
        stale_after: float = STALE_AFTER,
    ):
        self.client = client
        self.handlers: List[EventHandler] = list(handlers)
        self.clock = clock
        self.poll_interval = poll_interval
        self.stale_after = stale_after
        self.subscription = EventSubscription()

    @property
    def state(self) -> SubscriptionState:
        return self.subscription.state

    def run(self, stop_event: threading.Event) -> None:
        """Loop until ``stop_event`` is set."""
        logger.info("Starting subscription watchdog (poll every %ss)", self.poll_interval)
        while not stop_event.is_set():
            try:
                self.tick(stop_event)
            except Exception:
                logger.exception("Subscription watchdog tick failed")
            if stop_event.wait(self.poll_interval):
                break
        stream = self.subscription.mark_unsubscribed()
        if stream is not None:
            stream.close()
        logger.debug("Subscription watchdog stopped")

    def tick(self, stop_event: Optional[threading.Event] = None, now: Optional[float] = None) -> None:
        """Run one iteration of the watchdog without sleeping."""
        stop_event = stop_event or threading.Event()
        now = self.clock() if now is None else now

        if self.subscription.is_stale(now, self.stale_after):
            last = self.subscription.last_event_at
            logger.info(
                "Haven't received any events for %d seconds (last event at %s), re-subscribing",
                int(now - last),
                datetime.fromtimestamp(last, tz=timezone.utc).isoformat(),
            )
            stream = self.subscription.mark_unsubscribed()
            if stream is not None:
                stream.close()

        if self.subscription.state is SubscriptionState.UNSUBSCRIBED and self.client is not None:
            try:
                self._subscribe(stop_event)
            except SubscriptionError as e:
                logger.error("Failed to subscribe to beacon node: %s", e)

    def _subscribe(self, stop_event: threading.Event) -> None:
        logger.info("Starting subscriptions")
        provider = self.client.events_provider()
        if provider is None:
            raise SubscriptionError("client does not support event subscriptions")

        topics = select_topics(provider.supported_topics())
        generation = self.subscription.generation + 1

        def on_event(event: Event) -> None:
            self._deliver(event, generation)

        try:
            stream = provider.subscribe(topics, on_event, stop_event)
        except SubscriptionError:
            raise
        except Exception as e:
            raise SubscriptionError(str(e)) from e

        if stop_event.is_set():
            if stream is not None:
                stream.close()
            return
        self.subscription.mark_subscribed(topics, stream, self.clock())

    def _deliver(self, event: Event, generation: int) -> None:
        if generation < self.subscription.generation:
            # Event from a stream that has since been replaced
            return
        self.subscription.touch(self.clock())
        for handler in self.handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s event", event.topic)
