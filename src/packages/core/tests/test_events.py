"""Tests for the event broadcaster."""
import asyncio
import gc

import pytest

from channel_poster_core.jobs import EventBroadcaster, Job, JobEvent, QueueSubscriber
from channel_poster_core.jobs.models import COMPLETED, RUNNING
from channel_poster_core.util import NotFound

from fakes import MAPPING, ListSubscriber, make_row


def _job(n=3):
    return Job.from_records(
        [make_row(i) for i in range(n)], mapping=MAPPING, destination="@c", bot_token="t"
    )


def test_attach_replays_status_log_and_progress():
    job = _job()
    job.transition(RUNNING)
    job.log("Started sending 3 rows")
    job.resolve_row(job.rows[0])
    job.log("Row 1 sent")
    broadcaster = EventBroadcaster()
    broadcaster.open(job)

    sub = ListSubscriber()
    broadcaster.attach(job.job_id, sub)

    assert sub.kinds() == ["connected", "log", "log", "progress"]
    assert sub.events[0].data == {"job_id": job.job_id, "status": "running"}
    assert [e.data["message"] for e in sub.events[1:3]] == ["Started sending 3 rows", "Row 1 sent"]
    assert sub.events[3].data == {"current": 1, "total": 3, "sent": 1, "failed": 0, "percent": 33}


def test_attach_after_terminal_replays_terminal_event():
    job = _job(1)
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    job.transition(RUNNING)
    job.resolve_row(job.rows[0])
    job.transition(COMPLETED)
    broadcaster.publish(job.job_id, "done", {"sent": 1, "failed": 0, "total": 1, "duration": 0.1})

    sub = ListSubscriber()
    broadcaster.attach(job.job_id, sub)
    assert sub.kinds() == ["connected", "progress", "done"]
    assert sub.events[0].data["status"] == "completed"
    assert sub.events[-1].data["sent"] == 1


def test_publish_fans_out_in_order():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    a, b = ListSubscriber(), ListSubscriber()
    broadcaster.attach(job.job_id, a)
    broadcaster.attach(job.job_id, b)

    for i in range(5):
        broadcaster.publish(job.job_id, "log", {"time": "t", "message": str(i)})

    assert [e.data["message"] for e in a.events[2:]] == ["0", "1", "2", "3", "4"]
    assert a.events == b.events


def test_failing_subscriber_is_detached_without_affecting_others():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    good, bad = ListSubscriber(), ListSubscriber(fail_on="ratelimit")
    broadcaster.attach(job.job_id, good)
    broadcaster.attach(job.job_id, bad)
    assert broadcaster.subscriber_count(job.job_id) == 2

    broadcaster.publish(job.job_id, "ratelimit", {"retryAfterSeconds": 5})
    broadcaster.publish(job.job_id, "log", {"time": "t", "message": "after"})

    assert broadcaster.subscriber_count(job.job_id) == 1
    assert good.kinds()[-2:] == ["ratelimit", "log"]
    assert "ratelimit" not in bad.kinds()
    assert "log" not in bad.kinds()[2:]


def test_detach_is_idempotent():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    sub = ListSubscriber()
    broadcaster.attach(job.job_id, sub)
    broadcaster.detach(job.job_id, sub)
    broadcaster.detach(job.job_id, sub)
    broadcaster.detach("unknown", sub)
    broadcaster.publish(job.job_id, "log", {"time": "t", "message": "x"})
    assert sub.kinds() == ["connected", "progress"]


def test_subscribers_are_held_weakly():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    sub = ListSubscriber()
    broadcaster.attach(job.job_id, sub)
    assert broadcaster.subscriber_count(job.job_id) == 1
    del sub
    gc.collect()
    assert broadcaster.subscriber_count(job.job_id) == 0


def test_attach_unknown_job():
    with pytest.raises(NotFound):
        EventBroadcaster().attach("nope", ListSubscriber())


def test_subscriber_failing_during_replay_is_not_attached():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    with pytest.raises(ConnectionResetError):
        broadcaster.attach(job.job_id, ListSubscriber(fail_on="progress"))
    assert broadcaster.subscriber_count(job.job_id) == 0


def test_publish_after_close_is_a_no_op():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    broadcaster.close(job.job_id)
    event = broadcaster.publish(job.job_id, "log", {"message": "x"})
    assert event.kind == "log"
    with pytest.raises(NotFound):
        broadcaster.attach(job.job_id, ListSubscriber())


def test_event_to_sse():
    event = JobEvent("progress", {"current": 1, "percent": 50})
    assert event.to_sse() == 'event: progress\ndata: {"current": 1, "percent": 50}\n\n'


@pytest.mark.asyncio
async def test_queue_subscriber_stops_after_terminal_event():
    sub = QueueSubscriber(maxsize=10)
    sub.send(JobEvent("log", {"message": "a"}))
    sub.send(JobEvent("stopped"))
    sub.send(JobEvent("log", {"message": "never read"}))
    kinds = [e.kind async for e in sub.events()]
    assert kinds == ["log", "stopped"]


@pytest.mark.asyncio
async def test_slow_queue_subscriber_is_dropped():
    job = _job()
    broadcaster = EventBroadcaster()
    broadcaster.open(job)
    slow = QueueSubscriber(maxsize=3)
    fast = ListSubscriber()
    broadcaster.attach(job.job_id, slow)
    broadcaster.attach(job.job_id, fast)

    for i in range(5):
        broadcaster.publish(job.job_id, "log", {"time": "t", "message": str(i)})

    assert slow.dropped
    assert broadcaster.subscriber_count(job.job_id) == 1
    assert len(fast.events) == 2 + 5
    received = await asyncio.wait_for(_drain(slow), timeout=1)
    assert received == []


async def _drain(sub):
    return [e async for e in sub.events()]
