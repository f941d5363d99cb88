"""Metric jobs run by the supervisor.

Each job registers its own metrics and implements the start/tick contract
defined by ``Job``. The supervisor knows nothing about what they measure.
"""
from .job_base import Job
from .general import GeneralJob
from .sync import SyncJob
from .spec import SpecJob
from .forks import ForksJob
from .beacon import BeaconJob
from .event import EventJob

__all__ = [
    "Job",
    "GeneralJob",
    "SyncJob",
    "SpecJob",
    "ForksJob",
    "BeaconJob",
    "EventJob",
]
