from __future__ import annotations
import logging
import threading

from eth_metrics_exporter.jobs import Job
from eth_metrics_exporter.metrics import MetricsSink
from eth_metrics_exporter.supervisor import JobSupervisor
from eth_metrics_exporter.types import ExporterError, JobStatus

JOB_NAMES = ("general", "spec", "sync", "fork", "beacon", "event")


class _RecordingJob(Job):
    INTERVAL = 60.0

    def __init__(self, name: str, fail: bool = False):
        self.NAME = name
        self.fail = fail
        self.ticked = threading.Event()
        super().__init__(None, MetricsSink("test"))

    def setup(self):
        if self.fail:
            raise ExporterError(f"{self.NAME} endpoint unavailable")

    def tick(self):
        self.ticked.set()


def test_failed_job_does_not_stop_the_others(caplog):
    jobs = {name: _RecordingJob(name, fail=(name == "spec")) for name in JOB_NAMES}
    watchdog_ran = threading.Event()

    def watchdog(stop_event):
        watchdog_ran.set()
        stop_event.wait()

    stop_event = threading.Event()
    supervisor = JobSupervisor(list(jobs.values()), tasks=[("subscription-watchdog", watchdog)])

    with caplog.at_level(logging.ERROR):
        supervisor.start(stop_event)
        for name, job in jobs.items():
            if name != "spec":
                assert job.ticked.wait(timeout=5), name
        assert watchdog_ran.wait(timeout=5)

        stop_event.set()
        supervisor.join(timeout=5)

    assert jobs["spec"].status is JobStatus.FAILED
    assert jobs["spec"].failure_reason == "spec endpoint unavailable"
    assert not jobs["spec"].ticked.is_set()
    assert "Failed to start spec metrics" in caplog.text

    statuses = supervisor.statuses()
    assert statuses["spec"] == "failed"
    for name in JOB_NAMES:
        if name != "spec":
            assert statuses[name] == "stopped"


def test_failed_job_is_not_retried():
    job = _RecordingJob("spec", fail=True)
    calls = []
    original_setup = job.setup

    def counting_setup():
        calls.append(1)
        original_setup()

    job.setup = counting_setup
    stop_event = threading.Event()
    supervisor = JobSupervisor([job])
    supervisor.start(stop_event)
    supervisor.join(timeout=5)

    assert calls == [1]
    assert job.status is JobStatus.FAILED
    stop_event.set()


def test_crashing_task_is_isolated(caplog):
    job = _RecordingJob("general")

    def crash(stop_event):
        raise RuntimeError("watchdog exploded")

    stop_event = threading.Event()
    supervisor = JobSupervisor([job], tasks=[("subscription-watchdog", crash)])
    with caplog.at_level(logging.ERROR):
        supervisor.start(stop_event)
        assert job.ticked.wait(timeout=5)
        stop_event.set()
        supervisor.join(timeout=5)

    assert job.status is JobStatus.STOPPED
    assert "subscription-watchdog stopped unexpectedly" in caplog.text


def test_threads_are_named_after_jobs():
    stop_event = threading.Event()
    stop_event.set()
    supervisor = JobSupervisor([_RecordingJob("sync")])
    threads = supervisor.start(stop_event)
    supervisor.join(timeout=5)
    assert [t.name for t in threads] == ["job-sync"]
