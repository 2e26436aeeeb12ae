"""In-process job registry."""
import asyncio
import threading
from typing import Any, Mapping, Sequence

import structlog

from channel_poster_core.delivery import TelegramSender, missing_fields
from channel_poster_core.jobs.events import EventBroadcaster, Subscriber
from channel_poster_core.jobs.models import PENDING, RUNNING, Job, JobSnapshot
from channel_poster_core.jobs.runner import JobRunner, SenderFactory, Sleep
from channel_poster_core.settings import Settings, get_settings
from channel_poster_core.util import ConfigurationMissing, InvalidInput, NotFound

logger = structlog.get_logger()


class JobRegistry:
    """Creates, looks up, stops and retires jobs.

    Jobs live only as long as the process. A job is evicted together with
    its subscriber channel ``retention_seconds`` after it reaches a terminal
    status.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        broadcaster: EventBroadcaster | None = None,
        sender_factory: SenderFactory | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.broadcaster = broadcaster or EventBroadcaster()
        self._sender_factory = sender_factory or self._telegram_sender
        self._sleep = sleep
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = threading.Lock()

    def _telegram_sender(self, job: Job) -> TelegramSender:
        return TelegramSender(
            job.bot_token,
            api_url=self.settings.telegram_api_url,
            timeout=self.settings.request_timeout_seconds,
            default_retry_after=self.settings.default_retry_after_seconds,
        )

    def submit(
        self,
        rows: Sequence[Mapping[str, Any]],
        mapping: Mapping[str, str],
        *,
        bot_token: str | None = None,
        channel_id: str | None = None,
    ) -> str:
        """Validate a submission, start its runner and return the job id.

        Must be called from inside a running event loop.
        """
        if not rows:
            raise InvalidInput("No rows to send")
        if any(not isinstance(r, Mapping) for r in rows):
            raise InvalidInput("Every row must be a mapping of column to value")
        if mapping is None:
            mapping = {}
        if not isinstance(mapping, Mapping):
            raise InvalidInput("Mapping must be an object of target field to column name")
        bad = sorted(str(k) for k, v in mapping.items() if not isinstance(v, str))
        if bad:
            raise InvalidInput(f"Mapping values must be column names: {', '.join(bad)}")
        missing = missing_fields(mapping)
        if missing:
            raise InvalidInput(f"Mapping is missing required fields: {', '.join(missing)}")

        token = bot_token or self.settings.bot_token
        destination = channel_id or self.settings.channel_id
        if not token or not destination:
            raise ConfigurationMissing(
                "Bot token and channel id must be provided or configured (BOT_TOKEN, CHANNEL_ID)"
            )

        job = Job.from_records(
            list(rows),
            mapping=mapping,
            destination=destination,
            bot_token=token,
            max_log_entries=self.settings.max_log_entries or None,
        )
        self.broadcaster.open(job)
        with self._lock:
            self._jobs[job.job_id] = job
        task = asyncio.get_running_loop().create_task(self._run_and_retire(job))
        with self._lock:
            self._tasks[job.job_id] = task
        logger.info("job_submitted", job_id=job.job_id, total=job.total)
        return job.job_id

    async def _run_and_retire(self, job: Job) -> None:
        runner = JobRunner(job, self._sender_factory, self.broadcaster, self.settings, sleep=self._sleep)
        try:
            await runner.run()
            await asyncio.sleep(self.settings.retention_seconds)
        finally:
            self._evict(job.job_id)

    def _evict(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)
            self._tasks.pop(job_id, None)
        self.broadcaster.close(job_id)
        logger.debug("job_evicted", job_id=job_id)

    def _lookup(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None:
            raise NotFound(job_id)
        return job

    def get(self, job_id: str) -> JobSnapshot:
        return self._lookup(job_id).snapshot()

    def request_stop(self, job_id: str) -> None:
        """Ask the job's runner to stop. Safe to call more than once."""
        job = self._lookup(job_id)
        if job.request_stop():
            logger.info("job_stop_requested", job_id=job_id, status=job.status)

    def list_jobs(self) -> list[JobSnapshot]:
        """Snapshots of every retained job, active ones first, newest first."""
        with self._lock:
            jobs = list(self._jobs.values())
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        jobs.sort(key=lambda j: 0 if j.status in (RUNNING, PENDING) else 1)
        return [j.snapshot() for j in jobs]

    def subscribe(self, job_id: str, subscriber: Subscriber) -> None:
        self.broadcaster.attach(job_id, subscriber)

    def unsubscribe(self, job_id: str, subscriber: Subscriber) -> None:
        self.broadcaster.detach(job_id, subscriber)

    async def wait(self, job_id: str) -> JobSnapshot:
        """Wait for the job's runner to reach a terminal status."""
        job = self._lookup(job_id)
        await job.wait_finished()
        return job.snapshot()

    async def shutdown(self) -> None:
        """Stop every job and cancel outstanding runner tasks."""
        with self._lock:
            jobs = list(self._jobs.values())
            tasks = list(self._tasks.values())
        for job in jobs:
            job.request_stop()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("registry_shutdown", jobs=len(jobs))


_registry: JobRegistry | None = None


def get_registry() -> JobRegistry:
    """Get the process-wide registry, creating it on first use."""
    global _registry
    if _registry is None:
        _registry = JobRegistry()
    return _registry


def set_registry(registry: JobRegistry | None) -> None:
    """Replace the process-wide registry (used by tests and app startup)."""
    global _registry
    _registry = registry


def submit_job(rows, mapping, *, bot_token=None, channel_id=None) -> str:
    return get_registry().submit(rows, mapping, bot_token=bot_token, channel_id=channel_id)


def get_job_status(job_id: str) -> JobSnapshot:
    return get_registry().get(job_id)


def request_stop_job(job_id: str) -> None:
    get_registry().request_stop(job_id)


def subscribe_to_job(job_id: str, subscriber: Subscriber) -> None:
    get_registry().subscribe(job_id, subscriber)
