"""Minimal client for the beacon node HTTP API."""
from __future__ import annotations
import http.client
import json
import logging
import socket
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
from urllib import error as urlerror
from urllib import parse, request

from .types import Event, ExporterError, SubscriptionError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_TIMEOUT = 5.0

# Topics the event stream can deliver, as advertised to subscribers.
SUPPORTED_EVENT_TOPICS: Dict[str, bool] = {
    "attestation": True,
    "block": True,
    "chain_reorg": True,
    "contribution_and_proof": True,
    "finalized_checkpoint": True,
    "head": True,
    "voluntary_exit": True,
}


def _http_get_json(url: str, timeout: float = DEFAULT_TIMEOUT) -> Tuple[Optional[Any], Optional[str]]:
    """GET a JSON document.

    Returns (decoded_body_or_None, error_str_or_None)
    """
    req = request.Request(url, headers={"Accept": "application/json"})
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode()), None
    except socket.timeout:
        return None, f"GET timeout after {timeout}s (url={url})"
    except urlerror.HTTPError as e:
        return None, f"HTTP {e.code} for {url}: {e.reason}"
    except urlerror.URLError as e:
        reason = getattr(e, "reason", e)
        return None, f"Connection error (url={url}): {reason}"
    except json.JSONDecodeError as e:
        return None, f"Invalid JSON from {url}: {e}"


def parse_event_stream(lines: Iterable[str]) -> Iterator[Tuple[str, str]]:
    """Yield (event_name, data) pairs from server-sent-event lines."""
    name = "message"
    data: List[str] = []
    for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield name, "\n".join(data)
            name, data = "message", []
            continue
        if line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if key == "event":
            name = value
        elif key == "data":
            data.append(value)
    if data:
        yield name, "\n".join(data)


class EventStream:
    """Handle for one open event stream and its reader thread."""

    def __init__(self, response, on_event: Callable[[Event], None], stop_event: threading.Event):
        self._response = response
        self._on_event = on_event
        self._stop_event = stop_event
        self._closed = threading.Event()
        self.thread = threading.Thread(target=self._read, name="event-stream", daemon=True)

    def start(self) -> None:
        self.thread.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _socket(self) -> Optional[socket.socket]:
        fp = getattr(self._response, "fp", None)
        return getattr(getattr(fp, "raw", None), "_sock", None)

    def close(self) -> None:
        """Stop the stream without waiting on the reader thread.

        The reader may be blocked in a read holding the response's buffer
        lock, so the socket is shut down to wake it; the reader thread then
        closes the response itself.
        """
        if self._closed.is_set():
            return
        self._closed.set()
        sock = self._socket()
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Error shutting down event stream: %s", e)

    def _lines(self) -> Iterator[str]:
        for raw in self._response:
            if self._closed.is_set() or self._stop_event.is_set():
                return
            yield raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw

    def _read(self) -> None:
        try:
            for topic, payload in parse_event_stream(self._lines()):
                try:
                    data = json.loads(payload)
                except json.JSONDecodeError:
                    logger.warning("Dropping undecodable %s event: %r", topic, payload[:200])
                    continue
                self._on_event(Event(topic=topic, data=data if isinstance(data, dict) else {"value": data}))
        except (OSError, ValueError, http.client.HTTPException) as e:
            if not self._closed.is_set():
                logger.warning("Event stream ended with error: %s", e)
        except Exception:
            logger.exception("Event handler failed; closing event stream")
        finally:
            self._closed.set()
            try:
                self._response.close()
            except OSError as e:
                logger.debug("Error closing event stream: %s", e)


class EventsProvider:
    """Event-stream capability of a beacon node."""

    def __init__(self, client: "BeaconNodeClient"):
        self.client = client

    def supported_topics(self) -> Dict[str, bool]:
        return dict(SUPPORTED_EVENT_TOPICS)

    def subscribe(
        self,
        topics: Iterable[str],
        on_event: Callable[[Event], None],
        stop_event: threading.Event,
    ) -> EventStream:
        """Open the event stream and start delivering events.

        Returns once the stream is open. Raises SubscriptionError when the
        node refuses or cannot be reached.
        """
        topics = sorted(topics)
        if not topics:
            raise SubscriptionError("no topics to subscribe to")
        query = parse.urlencode({"topics": ",".join(topics)})
        url = f"{self.client.url}/eth/v1/events?{query}"
        req = request.Request(url, headers={"Accept": "text/event-stream"})
        try:
            response = request.urlopen(req, timeout=self.client.stream_timeout)
        except urlerror.HTTPError as e:
            raise SubscriptionError(f"HTTP {e.code} for {url}: {e.reason}") from e
        except urlerror.URLError as e:
            raise SubscriptionError(f"Connection error (url={url}): {getattr(e, 'reason', e)}") from e
        except socket.timeout as e:
            raise SubscriptionError(f"Timeout opening event stream (url={url})") from e

        stream = EventStream(response, on_event, stop_event)
        stream.start()
        logger.info("Subscribed to topics: %s", ", ".join(topics))
        return stream


class BeaconNodeClient:
    """Beacon node HTTP API client.

    Args:
        url: Base URL of the node, e.g. ``http://127.0.0.1:5052``.
        timeout: Timeout in seconds for regular requests.
        stream_timeout: Socket timeout for the event stream, None to block.
        events_enabled: Whether the node exposes the event stream.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        stream_timeout: Optional[float] = None,
        events_enabled: bool = True,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.stream_timeout = stream_timeout
        self.events_enabled = events_enabled

    def get(self, path: str) -> Any:
        """Return the ``data`` member of a JSON response."""
        body, err = _http_get_json(f"{self.url}{path}", timeout=self.timeout)
        if err:
            raise ExporterError(err)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def events_provider(self) -> Optional[EventsProvider]:
        return EventsProvider(self) if self.events_enabled else None

    def node_version(self) -> str:
        return str(self.get("/eth/v1/node/version").get("version", "unknown"))

    def peer_count(self) -> Dict[str, int]:
        data = self.get("/eth/v1/node/peer_count")
        return {k: int(v) for k, v in data.items()}

    def syncing(self) -> Dict[str, Any]:
        return self.get("/eth/v1/node/syncing")

    def spec(self) -> Dict[str, Any]:
        return self.get("/eth/v1/config/spec")

    def head_block(self) -> Dict[str, Any]:
        return self.get("/eth/v2/beacon/blocks/head")
