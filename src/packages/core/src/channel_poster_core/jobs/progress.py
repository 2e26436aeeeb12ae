"""Progress aggregation."""
import math

from channel_poster_core.jobs.models import Job, JobSnapshot


def percent(current: int, total: int) -> int:
    """Whole percent of rows processed, rounding halves up."""
    if total <= 0:
        return 0
    return int(math.floor(current / total * 100 + 0.5))


def progress_payload(job: Job | JobSnapshot) -> dict[str, int]:
    """Payload of a ``progress`` event."""
    return {
        "current": job.current,
        "total": job.total,
        "sent": job.sent,
        "failed": job.failed,
        "percent": percent(job.current, job.total),
    }
