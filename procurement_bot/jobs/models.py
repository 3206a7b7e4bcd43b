"""Job lifecycle types."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

# Counter name -> literal marker counted in the accumulated log.
COUNTER_MARKERS: dict[str, str] = {
    "invoices": "Saving PDF ->",
    "terms": "Searching term ",
}


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FINISHED, JobStatus.ERROR)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.ERROR}),
    JobStatus.RUNNING: frozenset({JobStatus.FINISHED, JobStatus.ERROR}),
    JobStatus.FINISHED: frozenset(),
    JobStatus.ERROR: frozenset(),
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def compute_counters(log: str) -> dict[str, int]:
    """Counters are always a projection of the full log text."""
    return {name: log.count(marker) for name, marker in COUNTER_MARKERS.items()}


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


@dataclass
class Job:
    """A tracked unit of asynchronous work."""

    id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    log: str = ""
    counters: dict[str, int] = field(default_factory=lambda: compute_counters(""))
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    error: Optional[str] = None

    def append_log(self, chunk: str) -> None:
        self.log += chunk
        self.counters = compute_counters(self.log)
        self.touch()

    def touch(self) -> None:
        self.updated_at = _now()

    def summary(self) -> "JobSummary":
        return JobSummary(
            id=self.id,
            status=self.status,
            counters=dict(self.counters),
            meta=dict(self.meta),
            created_at=self.created_at,
            updated_at=self.updated_at,
            error=self.error,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        log = data.get("log") or ""
        return cls(
            id=data["id"],
            status=JobStatus(data.get("status", JobStatus.PENDING.value)),
            log=log,
            counters=compute_counters(log),
            meta=data.get("meta") or {},
            created_at=data.get("created_at") or _now(),
            updated_at=data.get("updated_at") or _now(),
            error=data.get("error"),
        )


@dataclass
class JobSummary:
    """Job without its log body."""

    id: str
    status: JobStatus
    counters: dict[str, int]
    meta: dict[str, Any]
    created_at: str
    updated_at: str
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data
