"""Shared type and exception definitions for the exporter."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ExporterError(Exception):
    """Base exception for exporter errors."""
    pass


class JobStartupError(ExporterError):
    """Raised when a job fails to initialise."""
    def __init__(self, job_name: str, reason: str):
        self.job_name = job_name
        self.reason = reason
        super().__init__(f"{job_name}: {reason}")


class SubscriptionError(ExporterError):
    """Raised when the node cannot be subscribed to."""
    pass


class PathError(ExporterError):
    """Raised when a monitored path cannot be read."""
    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"{path}: {cause}" if cause else path)


class JobStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class UsageRecord:
    """Measured size of one requested root path."""
    path: str
    size_bytes: int

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "size_bytes": self.size_bytes}


@dataclass
class Event:
    """A single event delivered by the node's event stream."""
    topic: str
    data: Dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
