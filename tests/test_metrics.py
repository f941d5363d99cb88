from __future__ import annotations
import threading

import pytest

from eth_metrics_exporter.metrics import MetricsSink


def test_const_labels_are_applied(sink, const_labels):
    sink.gauge("peers", "Connected peers.", ["state"])
    sink.set("peers", 12, state="connected")

    assert sink.registry.get_sample_value("test_peers", {**const_labels, "state": "connected"}) == 12


def test_registering_twice_returns_the_same_metric(sink):
    first = sink.gauge("head_slot", "Head slot.")
    assert sink.gauge("head_slot", "Head slot.") is first


def test_unknown_metric_raises(sink):
    with pytest.raises(KeyError):
        sink.set("nope", 1)


def test_metrics_without_labels():
    sink = MetricsSink("plain")
    sink.counter("ticks", "Ticks.")
    sink.inc("ticks")
    sink.inc("ticks", 2)
    assert sink.registry.get_sample_value("plain_ticks_total") == 3


def test_render_exposes_metrics(sink):
    sink.gauge("disk_usage_bytes", "Disk usage.", ["directory"])
    sink.set("disk_usage_bytes", 2048, directory="/data")

    text = sink.render().decode()
    assert "test_disk_usage_bytes" in text
    assert 'directory="/data"' in text
    assert 'node_name="node-1"' in text


def test_concurrent_updates(sink, const_labels):
    sink.counter("events", "Events.", ["name"])

    def worker():
        for _ in range(500):
            sink.inc("events", name="head")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sink.registry.get_sample_value("test_events_total", {**const_labels, "name": "head"}) == 4000
