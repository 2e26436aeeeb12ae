"""Job management module."""
from channel_poster_core.jobs.models import (
    PENDING,
    RUNNING,
    COMPLETED,
    STOPPED,
    FAILED,
    TERMINAL_STATUSES,
    Job,
    JobSnapshot,
    LogEntry,
    Row,
    RowError,
)
from channel_poster_core.jobs.progress import percent, progress_payload
from channel_poster_core.jobs.events import EventBroadcaster, JobEvent, QueueSubscriber
from channel_poster_core.jobs.runner import JobRunner, backoff_delay
from channel_poster_core.jobs.registry import (
    JobRegistry,
    get_registry,
    set_registry,
    submit_job,
    get_job_status,
    request_stop_job,
    subscribe_to_job,
)

__all__ = [
    "PENDING",
    "RUNNING",
    "COMPLETED",
    "STOPPED",
    "FAILED",
    "TERMINAL_STATUSES",
    "Job",
    "JobSnapshot",
    "LogEntry",
    "Row",
    "RowError",
    "percent",
    "progress_payload",
    "EventBroadcaster",
    "JobEvent",
    "QueueSubscriber",
    "JobRunner",
    "backoff_delay",
    "JobRegistry",
    "get_registry",
    "set_registry",
    "submit_job",
    "get_job_status",
    "request_stop_job",
    "subscribe_to_job",
]
