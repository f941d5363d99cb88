"""Prometheus-backed metrics sink shared by every collector."""
from __future__ import annotations
import logging
import threading
from typing import Dict, Iterable, Optional, Sequence, Tuple, Union

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Metric = Union[Gauge, Counter]


class MetricsSink:
    """Registry of named gauges and counters with fixed constant labels.

    Constant labels (e.g. ``ethereum_role``, ``node_name``) are given once at
    construction and attached to every metric registered through the sink.
    Updates are addressed by the short metric name; the namespace prefix is
    added on registration.

    Args:
        namespace: Prefix applied to every metric name.
        const_labels: Labels applied to every sample.
        registry: Optional registry, a fresh one is created when omitted.
    """

    def __init__(
        self,
        namespace: str,
        const_labels: Optional[Dict[str, str]] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.namespace = namespace
        self.const_labels: Dict[str, str] = dict(const_labels or {})
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Tuple[Metric, Tuple[str, ...]]] = {}
        self._lock = threading.Lock()

    def full_name(self, name: str) -> str:
        return f"{self.namespace}_{name}" if self.namespace else name

    def _register(self, cls, name: str, documentation: str, labelnames: Sequence[str]) -> Metric:
        with self._lock:
            if name in self._metrics:
                return self._metrics[name][0]
            labels = tuple(labelnames)
            metric = cls(
                self.full_name(name),
                documentation,
                list(self.const_labels) + list(labels),
                registry=self.registry,
            )
            self._metrics[name] = (metric, labels)
            logger.debug("Registered %s %s", cls.__name__.lower(), self.full_name(name))
            return metric

    def gauge(self, name: str, documentation: str, labelnames: Iterable[str] = ()) -> Gauge:
        return self._register(Gauge, name, documentation, tuple(labelnames))

    def counter(self, name: str, documentation: str, labelnames: Iterable[str] = ()) -> Counter:
        return self._register(Counter, name, documentation, tuple(labelnames))

    def _child(self, name: str, labels: Dict[str, str]):
        try:
            metric, labelnames = self._metrics[name]
        except KeyError:
            raise KeyError(f"Metric '{name}' is not registered") from None
        if not self.const_labels and not labelnames:
            return metric
        values = dict(self.const_labels)
        values.update({k: str(labels.get(k, "")) for k in labelnames})
        return metric.labels(**values)

    def set(self, name: str, value: float, /, **labels: str) -> None:
        self._child(name, labels).set(value)

    def inc(self, name: str, amount: float = 1, /, **labels: str) -> None:
        self._child(name, labels).inc(amount)

    def render(self) -> bytes:
        """Return the text exposition of every registered metric."""
        return generate_latest(self.registry)

    content_type = CONTENT_TYPE_LATEST
