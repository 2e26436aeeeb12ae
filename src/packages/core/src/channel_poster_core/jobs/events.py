"""Per-job event fan-out to live subscribers."""
import asyncio
import json
import threading
import weakref
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

import structlog

from channel_poster_core.jobs.models import Job
from channel_poster_core.jobs.progress import progress_payload
from channel_poster_core.util import NotFound

logger = structlog.get_logger()

CONNECTED = "connected"
STATUS = "status"
PROGRESS = "progress"
LOG = "log"
RATELIMIT = "ratelimit"
DONE = "done"
STOPPED = "stopped"
FAILED = "failed"

TERMINAL_EVENTS = frozenset({DONE, STOPPED, FAILED})


@dataclass(frozen=True)
class JobEvent:
    """A tagged event emitted for one job."""

    kind: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_EVENTS

    def to_sse(self) -> str:
        """Format as a Server-Sent Events frame."""
        return f"event: {self.kind}\ndata: {json.dumps(self.data)}\n\n"


_DROPPED = JobEvent("dropped")


class Subscriber(Protocol):
    """A live observer. ``send`` must not block; raising detaches it."""

    def send(self, event: JobEvent) -> None:
        ...


class QueueSubscriber:
    """Subscriber backed by an asyncio queue with a bounded backlog.

    Used by the SSE endpoint: the broadcaster writes with ``send`` and the
    connection drains with ``events()``. Writing past the backlog limit
    raises, so a reader that falls too far behind is dropped instead of
    stalling the job; its stream then ends and the client can reconnect for
    a fresh replay. The replay written on attach is reserved on top of the
    limit, however long the job's log is.
    """

    def __init__(self, maxsize: int = 1000):
        self.queue: asyncio.Queue[JobEvent] = asyncio.Queue()
        self.maxsize = maxsize
        self.dropped = False

    def reserve(self, n: int) -> None:
        """Make room for ``n`` more queued events."""
        self.maxsize += n

    def send(self, event: JobEvent) -> None:
        if self.dropped:
            raise RuntimeError("subscriber was dropped")
        if self.queue.qsize() >= self.maxsize:
            self.dropped = True
            while not self.queue.empty():
                self.queue.get_nowait()
            self.queue.put_nowait(_DROPPED)
            raise asyncio.QueueFull()
        self.queue.put_nowait(event)

    async def events(self) -> AsyncIterator[JobEvent]:
        """Yield events until the terminal one, or until this subscriber is dropped."""
        while True:
            event = await self.queue.get()
            if event is _DROPPED:
                return
            yield event
            if event.is_terminal:
                return


class _Channel:
    def __init__(self, job: Job):
        self.job = job
        self.subscribers: weakref.WeakSet = weakref.WeakSet()
        self.lock = threading.Lock()
        self.terminal: JobEvent | None = None


class EventBroadcaster:
    """Fans out each job's events to every subscriber attached to that job.

    Each job has its own channel and lock, so activity on one job never
    waits on another. Subscribers are held weakly: a dropped connection
    disappears from the channel even if nobody calls ``detach``.
    """

    def __init__(self):
        self._channels: dict[str, _Channel] = {}
        self._lock = threading.Lock()

    def open(self, job: Job) -> None:
        with self._lock:
            self._channels.setdefault(job.job_id, _Channel(job))

    def close(self, job_id: str) -> None:
        with self._lock:
            self._channels.pop(job_id, None)

    def _channel(self, job_id: str) -> _Channel:
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            raise NotFound(job_id)
        return channel

    def attach(self, job_id: str, subscriber: Subscriber) -> None:
        """Replay the job's history to ``subscriber`` and register it.

        A subscriber that fails during the replay is not registered and the
        error propagates to the caller.
        """
        channel = self._channel(job_id)
        job = channel.job
        with channel.lock:
            replay = [JobEvent(CONNECTED, {"job_id": job.job_id, "status": job.status})]
            replay.extend(JobEvent(LOG, entry.model_dump()) for entry in job.logs)
            replay.append(JobEvent(PROGRESS, progress_payload(job)))
            if channel.terminal is not None:
                replay.append(channel.terminal)
            reserve = getattr(subscriber, "reserve", None)
            if reserve is not None:
                reserve(len(replay))
            try:
                for event in replay:
                    subscriber.send(event)
            except Exception as e:
                logger.warning("subscriber_replay_failed", job_id=job_id, error=repr(e))
                raise
            channel.subscribers.add(subscriber)
        logger.debug("subscriber_attached", job_id=job_id, subscribers=len(channel.subscribers))

    def detach(self, job_id: str, subscriber: Subscriber) -> None:
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            return
        with channel.lock:
            channel.subscribers.discard(subscriber)

    def publish(self, job_id: str, kind: str, payload: dict[str, Any] | None = None) -> JobEvent:
        """Push one event to every subscriber of the job, in emission order."""
        event = JobEvent(kind, payload or {})
        with self._lock:
            channel = self._channels.get(job_id)
        if channel is None:
            return event
        with channel.lock:
            if event.is_terminal:
                channel.terminal = event
            for subscriber in list(channel.subscribers):
                try:
                    subscriber.send(event)
                except Exception as e:
                    channel.subscribers.discard(subscriber)
                    logger.info(
                        "subscriber_dropped", job_id=job_id, event_kind=kind, error=repr(e)
                    )
        return event

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            channel = self._channels.get(job_id)
        return len(channel.subscribers) if channel else 0
