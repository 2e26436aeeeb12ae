"""Job models."""
import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel

from channel_poster_core.util import generate_id, utc_now, utc_now_iso

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
STOPPED = "stopped"
FAILED = "failed"

TERMINAL_STATUSES = frozenset({COMPLETED, STOPPED, FAILED})

# status -> statuses it may move to
TRANSITIONS = {
    PENDING: frozenset({RUNNING, FAILED, STOPPED}),
    RUNNING: frozenset(TERMINAL_STATUSES),
    COMPLETED: frozenset(),
    STOPPED: frozenset(),
    FAILED: frozenset(),
}

ROW_PENDING = "pending"
ROW_SENT = "sent"
ROW_FAILED = "failed"


class LogEntry(BaseModel):
    """One timestamped line of a job's log."""

    time: str
    message: str


class RowError(BaseModel):
    """Why a row was not delivered."""

    row_index: int
    error: str


class JobSnapshot(BaseModel):
    """Read-only view of a job, as returned by status queries."""

    job_id: str
    status: str
    total: int
    current: int
    sent: int
    failed: int
    percent: int
    errors: list[RowError]
    created_at: str
    started_at: str | None = None
    finished_at: str | None = None
    duration: float | None = None


@dataclass
class Row:
    """An input record and its delivery state."""

    index: int
    data: Mapping[str, str]
    state: str = ROW_PENDING
    error: str | None = None


@dataclass(eq=False)
class Job:
    """One batch-send operation.

    Counters, status, logs and row states are written only by the job's
    runner. Everyone else reads, or calls ``request_stop``.
    """

    rows: list[Row]
    mapping: Mapping[str, str]
    destination: str
    bot_token: str = field(repr=False)
    max_log_entries: int | None = 500
    job_id: str = field(default_factory=generate_id)
    status: str = PENDING
    current: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[RowError] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def __post_init__(self):
        self.mapping = MappingProxyType(dict(self.mapping))
        self.logs: deque[LogEntry] = deque(maxlen=self.max_log_entries)
        self._stop_requested = False
        self._finished = asyncio.Event()

    @classmethod
    def from_records(cls, records: list[Mapping[str, str]], **kwargs) -> "Job":
        rows = [Row(index=i, data=dict(r)) for i, r in enumerate(records)]
        return cls(rows=rows, **kwargs)

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> bool:
        """Set the stop flag. Returns False if it was already set."""
        if self._stop_requested:
            return False
        self._stop_requested = True
        return True

    def transition(self, status: str) -> None:
        if status not in TRANSITIONS.get(self.status, ()):
            raise ValueError(f"Invalid job transition {self.status} -> {status}")
        self.status = status
        if status == RUNNING:
            self.started_at = utc_now()
        elif status in TERMINAL_STATUSES:
            self.finished_at = utc_now()
            self._finished.set()

    async def wait_finished(self) -> None:
        """Block until the job reaches a terminal status."""
        await self._finished.wait()

    def log(self, message: str) -> LogEntry:
        entry = LogEntry(time=utc_now_iso(), message=message)
        self.logs.append(entry)
        return entry

    def resolve_row(self, row: Row, error: str | None = None) -> None:
        """Record a fully processed row and advance the counters."""
        self.current += 1
        if error is None:
            row.state = ROW_SENT
            self.sent += 1
        else:
            row.state = ROW_FAILED
            row.error = error
            self.errors.append(RowError(row_index=row.index, error=error))
            self.failed += 1

    def duration(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.finished_at or utc_now()
        return round((end - self.started_at).total_seconds(), 3)

    def snapshot(self) -> JobSnapshot:
        from channel_poster_core.jobs.progress import percent

        return JobSnapshot(
            job_id=self.job_id,
            status=self.status,
            total=self.total,
            current=self.current,
            sent=self.sent,
            failed=self.failed,
            percent=percent(self.current, self.total),
            errors=list(self.errors),
            created_at=_iso(self.created_at),
            started_at=_iso(self.started_at),
            finished_at=_iso(self.finished_at),
            duration=self.duration(),
        )


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")
