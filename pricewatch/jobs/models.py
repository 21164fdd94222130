"""Report job data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR, JobStatus.CANCELED})

TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELED, JobStatus.ERROR}),
    JobStatus.RUNNING: frozenset({JobStatus.RUNNING, JobStatus.DONE, JobStatus.ERROR, JobStatus.CANCELED}),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
    JobStatus.CANCELED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Same-status saves are always allowed (counter and report updates)."""
    return current == target or target in TRANSITIONS[current]


def normalize_key(article: str, brand: str) -> str:
    return f"{''.join(str(article).split()).upper()}|{''.join(str(brand).split()).upper()}"


@dataclass(slots=True)
class InputRow:
    article: str
    brand: str

    @property
    def key(self) -> str:
        return normalize_key(self.article, self.brand)


@dataclass(slots=True)
class RowResult:
    article: str
    brand: str
    prices: list[float] = field(default_factory=list)
    stats: dict[str, float] = field(default_factory=dict)
    ai: str | None = None
    error: str | None = None

    @property
    def key(self) -> str:
        return normalize_key(self.article, self.brand)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data["ai"] is None:
            data.pop("ai")
        if data["error"] is None:
            data.pop("error")
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RowResult":
        return cls(
            article=str(data.get("article", "")),
            brand=str(data.get("brand", "")),
            prices=list(data.get("prices") or []),
            stats=dict(data.get("stats") or {}),
            ai=data.get("ai"),
            error=data.get("error"),
        )


@dataclass(slots=True)
class ReportJob:
    id: str
    status: JobStatus
    period_from: date
    period_to: date
    total: int
    input_rows: list[InputRow]
    processed: int = 0
    results: list[RowResult] = field(default_factory=list)
    last_id: str | None = None
    result_file: str | None = None
    error: str | None = None
    original_filename: str | None = None
    include_stats: bool = True
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def complete(self) -> bool:
        return self.processed >= self.total

    def cursor_for(self, index: int) -> str:
        return f"{index}:{self.input_rows[index].key}"

    def snapshot(self) -> dict[str, Any]:
        """Status payload shared by the API and the progress stream."""
        return {
            "id": self.id,
            "status": self.status.value,
            "processed": self.processed,
            "total": self.total,
            "result_file": self.result_file,
            "error": self.error,
            "original_filename": self.original_filename,
            "period_from": self.period_from.isoformat(),
            "period_to": self.period_to.isoformat(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
