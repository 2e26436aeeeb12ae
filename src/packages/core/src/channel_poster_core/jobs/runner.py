"""Job runner: row-by-row delivery with retry, backoff and rate limit handling."""
import asyncio
from typing import Awaitable, Callable

import structlog

from channel_poster_core.delivery import (
    Delivered,
    DeliveryFailed,
    DeliveryOutcome,
    RateLimited,
    Sender,
    render_caption,
)
from channel_poster_core.delivery.template import image_reference
from channel_poster_core.jobs import events
from channel_poster_core.jobs.events import EventBroadcaster
from channel_poster_core.jobs.models import COMPLETED, FAILED, RUNNING, STOPPED, Job, Row
from channel_poster_core.jobs.progress import progress_payload
from channel_poster_core.settings import Settings
from channel_poster_core.util import ConfigurationMissing, RowDeliveryFailure

logger = structlog.get_logger()

MISSING_IMAGE = "missing image reference"

SenderFactory = Callable[[Job], Sender]
Sleep = Callable[[float], Awaitable[None]]


class StopObserved(Exception):
    """The stop flag was seen while a row was still in flight."""


def backoff_delay(attempt: int, base: float, ceiling: float) -> float:
    """Delay after the ``attempt``-th failed try (1-based): base * 2**(n-1), capped."""
    return min(base * (2 ** (attempt - 1)), ceiling)


class JobRunner:
    """Drives one job from ``pending`` to a terminal status.

    The runner is the only writer of its job. It emits an event through the
    broadcaster after every state change, and checks the stop flag before
    each row and after every wait.
    """

    def __init__(
        self,
        job: Job,
        sender_factory: SenderFactory,
        broadcaster: EventBroadcaster,
        settings: Settings,
        sleep: Sleep = asyncio.sleep,
    ):
        self.job = job
        self._sender_factory = sender_factory
        self._broadcaster = broadcaster
        self._settings = settings
        self._sleep = sleep
        self._log = logger.bind(job_id=job.job_id)

    async def run(self) -> None:
        try:
            await self._run()
        except asyncio.CancelledError:
            if not self.job.is_terminal:
                self._finish_stopped("Job cancelled")
            raise
        except Exception as e:
            self._log.exception("job_crashed", error=str(e))
            if not self.job.is_terminal:
                self._fail(f"Unexpected error: {e}")

    async def _run(self) -> None:
        job = self.job
        try:
            sender = self._connect()
        except ConfigurationMissing as e:
            self._fail(str(e))
            return

        job.transition(RUNNING)
        self._log.info("job_started", total=job.total)
        self._emit(events.STATUS, {"status": RUNNING})
        self._write_log(f"Started sending {job.total} rows")

        for row in job.rows:
            if job.stop_requested:
                break
            try:
                await self._process_row(sender, row)
            except StopObserved:
                break
            self._emit(events.PROGRESS, progress_payload(job))
            if row.index < job.total - 1:
                await self._sleep(self._settings.message_delay_seconds)

        if job.current < job.total:
            self._finish_stopped(f"Stopped after {job.current}/{job.total} rows")
            return

        job.transition(COMPLETED)
        duration = job.duration()
        self._log.info("job_completed", sent=job.sent, failed=job.failed, duration=duration)
        self._write_log(f"Finished: {job.sent} sent, {job.failed} failed")
        self._emit(
            events.DONE,
            {"sent": job.sent, "failed": job.failed, "total": job.total, "duration": duration},
        )

    def _connect(self) -> Sender:
        if not self.job.bot_token or not self.job.destination:
            raise ConfigurationMissing("Bot token and channel id are required")
        return self._sender_factory(self.job)

    async def _process_row(self, sender: Sender, row: Row) -> None:
        job = self.job
        media_ref = image_reference(row.data, job.mapping)
        if not media_ref:
            job.resolve_row(row, error=MISSING_IMAGE)
            self._log.warning("row_skipped", row=row.index + 1, reason=MISSING_IMAGE)
            self._write_log(f"Row {row.index + 1}: {MISSING_IMAGE}")
            return

        caption = render_caption(row.data, job.mapping)
        try:
            await self._deliver(sender, row, media_ref, caption)
        except RowDeliveryFailure as e:
            job.resolve_row(row, error=e.message)
            self._log.warning("row_failed", row=row.index + 1, attempts=e.attempts, error=e.message)
            self._write_log(f"Row {row.index + 1} failed after {e.attempts} attempts: {e.message}")
            return

        job.resolve_row(row)
        self._write_log(f"Row {row.index + 1} sent")

    async def _deliver(self, sender: Sender, row: Row, media_ref: str, caption: str) -> None:
        """Try a row until it is delivered, raising once the attempt budget is spent.

        Rate limit waits do not use up attempts.
        """
        settings = self._settings
        attempt = 0
        while True:
            outcome = await self._attempt(sender, media_ref, caption)
            if isinstance(outcome, Delivered):
                return
            if isinstance(outcome, RateLimited):
                self._log.info("rate_limited", row=row.index + 1, retry_after=outcome.retry_after)
                self._emit(events.RATELIMIT, {"retryAfterSeconds": outcome.retry_after})
                self._write_log(f"Rate limited, waiting {outcome.retry_after:g}s")
                await self._wait(outcome.retry_after + settings.rate_limit_margin_seconds)
                continue

            attempt += 1
            self._log.info(
                "delivery_attempt_failed", row=row.index + 1, attempt=attempt, error=outcome.description
            )
            if attempt >= settings.max_attempts:
                raise RowDeliveryFailure(row.index, outcome.description, attempts=attempt)
            await self._wait(
                backoff_delay(attempt, settings.backoff_base_seconds, settings.backoff_max_seconds)
            )

    async def _attempt(self, sender: Sender, media_ref: str, caption: str) -> DeliveryOutcome:
        timeout = self._settings.request_timeout_seconds
        try:
            return await asyncio.wait_for(
                sender.send_photo(self.job.destination, media_ref, caption), timeout=timeout
            )
        except asyncio.TimeoutError:
            return DeliveryFailed(f"Request timed out after {timeout:g}s")
        except Exception as e:
            self._log.warning("sender_error", error=repr(e))
            return DeliveryFailed(str(e) or e.__class__.__name__)

    async def _wait(self, seconds: float) -> None:
        await self._sleep(seconds)
        if self.job.stop_requested:
            raise StopObserved()

    def _finish_stopped(self, message: str) -> None:
        job = self.job
        job.transition(STOPPED)
        self._log.info("job_stopped", current=job.current, total=job.total)
        self._write_log(message)
        self._emit(events.STOPPED, {})

    def _fail(self, error: str) -> None:
        job = self.job
        job.transition(FAILED)
        self._log.error("job_failed", error=error)
        self._write_log(f"Job failed: {error}")
        self._emit(events.FAILED, {"error": error})

    def _write_log(self, message: str) -> None:
        entry = self.job.log(message)
        self._emit(events.LOG, entry.model_dump())

    def _emit(self, kind: str, payload: dict) -> None:
        self._broadcaster.publish(self.job.job_id, kind, payload)
