"""Tests for the HTTP API."""
import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from channel_poster_api import settings as api_settings
from channel_poster_api.main import app
from channel_poster_core import settings as core_settings
from channel_poster_core.delivery import Delivered
from channel_poster_core.jobs import JobRegistry, set_registry
from channel_poster_core.settings import Settings

MAPPING = {
    "title": "Title",
    "description": "Description",
    "view": "View",
    "download": "Download",
    "image": "Image",
}

CSV = (
    "Title,Description,View,Download,Image\n"
    "First,One,https://x/v/1,https://x/d/1,https://x/i/1.jpg\n"
    "Second,Two,https://x/v/2,https://x/d/2,\n"
    "Third,Three,https://x/v/3,https://x/d/3,https://x/i/3.jpg\n"
)


class RecordingSender:
    def __init__(self):
        self.calls = []

    async def send_photo(self, destination, media_ref, caption):
        self.calls.append((destination, media_ref, caption))
        return Delivered(message_id=len(self.calls))


async def _no_wait(seconds):
    await asyncio.sleep(0)


def _make_registry(sender, **overrides):
    values = dict(
        bot_token="1:abc", channel_id="@channel", message_delay_seconds=0, retention_seconds=60
    )
    values.update(overrides)
    return JobRegistry(
        settings=Settings(**values), sender_factory=lambda job: sender, sleep=_no_wait
    )


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def client(tmp_path, monkeypatch, sender):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    api_settings.get_settings.cache_clear()
    set_registry(_make_registry(sender))
    with TestClient(app) as c:
        yield c
    set_registry(None)
    api_settings.get_settings.cache_clear()


def _wait_terminal(client, job_id):
    for _ in range(500):
        body = client.get(f"/api/jobs/{job_id}").json()
        if body["status"] in ("completed", "stopped", "failed"):
            return body
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} did not finish")


def _rows():
    return [
        {"Title": "A", "Description": "a", "View": "v", "Download": "d", "Image": "https://x/a.jpg"},
        {"Title": "B", "Description": "b", "View": "v", "Download": "d", "Image": "https://x/b.jpg"},
    ]


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_config_never_exposes_token(monkeypatch, client):
    monkeypatch.setenv("BOT_TOKEN", "secret-token")
    monkeypatch.delenv("CHANNEL_ID", raising=False)
    core_settings.get_settings.cache_clear()
    try:
        response = client.get("/api/config")
    finally:
        core_settings.get_settings.cache_clear()
    body = response.json()
    assert body["bot_token_configured"] is True
    assert body["required_fields"] == ["title", "description", "view", "download", "image"]
    assert "secret-token" not in response.text


def test_create_job_with_rows(client, sender):
    response = client.post("/api/jobs", json={"rows": _rows(), "mapping": MAPPING})
    assert response.status_code == 200
    job_id = response.json()["job_id"]

    body = _wait_terminal(client, job_id)
    assert body["status"] == "completed"
    assert (body["total"], body["sent"], body["failed"], body["percent"]) == (2, 2, 0, 100)
    assert [c[1] for c in sender.calls] == ["https://x/a.jpg", "https://x/b.jpg"]


def test_upload_preview_then_send(client, sender):
    response = client.post(
        "/api/uploads/preview", files={"file": ("posts.csv", CSV.encode(), "text/csv")}
    )
    assert response.status_code == 200
    preview = response.json()
    assert preview["detected_format"] == "csv"
    assert preview["columns"] == ["Title", "Description", "View", "Download", "Image"]
    assert preview["total_records"] == 3
    assert preview["suggested_mapping"] == MAPPING

    response = client.post(
        "/api/jobs", json={"upload_id": preview["upload_id"], "mapping": preview["suggested_mapping"]}
    )
    body = _wait_terminal(client, response.json()["job_id"])
    assert (body["sent"], body["failed"]) == (2, 1)
    assert body["errors"] == [{"row_index": 1, "error": "missing image reference"}]


def test_upload_rejects_unknown_format(client):
    response = client.post(
        "/api/uploads/preview", files={"file": ("posts.xlsx", b"PK\x03\x04", "application/zip")}
    )
    assert response.status_code == 400


def test_create_job_validation_errors(client):
    assert client.post("/api/jobs", json={"rows": [], "mapping": MAPPING}).status_code == 400
    assert client.post("/api/jobs", json={"rows": _rows(), "mapping": {"title": "Title"}}).status_code == 400
    assert client.post("/api/jobs", json={"mapping": MAPPING}).status_code == 422
    response = client.post("/api/jobs", json={"upload_id": "nope", "mapping": MAPPING})
    assert response.status_code == 404


def test_create_job_without_credentials(client, sender):
    set_registry(_make_registry(sender, bot_token=None, channel_id=None))
    response = client.post("/api/jobs", json={"rows": _rows(), "mapping": MAPPING})
    assert response.status_code == 503


def test_unknown_job_is_404(client):
    assert client.get("/api/jobs/missing").status_code == 404
    assert client.post("/api/jobs/missing/stop").status_code == 404
    assert client.get("/api/jobs/missing/events").status_code == 404


def test_stop_finished_job(client):
    job_id = client.post("/api/jobs", json={"rows": _rows(), "mapping": MAPPING}).json()["job_id"]
    _wait_terminal(client, job_id)
    body = client.post(f"/api/jobs/{job_id}/stop").json()
    assert body == {"job_id": job_id, "status": "completed", "stop_requested": True}


def test_list_jobs(client):
    job_id = client.post("/api/jobs", json={"rows": _rows(), "mapping": MAPPING}).json()["job_id"]
    _wait_terminal(client, job_id)
    jobs = client.get("/api/jobs").json()["jobs"]
    assert [j["job_id"] for j in jobs] == [job_id]
    assert client.get("/api/jobs", params={"active_only": True}).json()["jobs"] == []


def test_event_stream_after_completion(client):
    job_id = client.post("/api/jobs", json={"rows": _rows(), "mapping": MAPPING}).json()["job_id"]
    _wait_terminal(client, job_id)

    with client.stream("GET", f"/api/jobs/{job_id}/events") as response:
        assert response.headers["content-type"].startswith("text/event-stream")
        text = "".join(response.iter_text())

    frames = [f for f in text.split("\n\n") if f]
    kinds = [f.split("\n")[0].removeprefix("event: ") for f in frames]
    assert kinds[0] == "connected"
    assert "log" in kinds
    assert kinds[-2:] == ["progress", "done"]
    assert '"sent": 2' in frames[-1]
