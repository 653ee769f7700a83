"""HTTP surface over the session queue."""
import io
import threading
import uuid
import zipfile

import pytest
from fastapi.testclient import TestClient

from pixelflex import batch
from pixelflex.api import routes
from pixelflex.collaborators import GeminiClient
from pixelflex.config import DESCRIPTION_FALLBACK
from pixelflex.main import app

from tests.conftest import image_bytes, open_bytes, transparent_png, truncated_png


@pytest.fixture
def client(monkeypatch):
    # No key: AI calls degrade without touching the network
    monkeypatch.setattr(routes, "get_gemini_client", lambda: GeminiClient(api_key=""))
    with TestClient(app) as c:
        c.headers["X-Session-ID"] = str(uuid.uuid4())
        yield c
        c.delete("/api/session/data")


def _upload(client, *files):
    return client.post("/api/queue", files=[("files", f) for f in files])


class TestInfo:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_formats(self, client):
        body = client.get("/api/formats").json()
        assert body["output"]["JPG"] == "image/jpeg"
        assert ".png" in body["input"]
        assert body["ai_available"] is False

    def test_session_id_is_issued(self):
        with TestClient(app) as c:
            resp = c.get("/api/queue")
            sid = resp.headers.get("X-Session-ID")
            assert sid
            assert batch.find_queue(sid) is None


class TestHeaderlessReads:
    def test_reads_do_not_register_queues(self):
        with TestClient(app) as c:
            before = len(batch._queues)
            for _ in range(10):
                assert c.get("/api/queue").json()["items"] == []
            assert c.get("/api/queue/archive").status_code == 404
            assert c.get("/api/queue/some-id").status_code == 404
            assert c.get("/api/queue/some-id/preview").status_code == 404
            assert c.get("/api/queue/some-id/download").status_code == 404
            assert c.delete("/api/queue/some-id").status_code == 404
            assert c.delete("/api/queue").json() == {"ok": True}
            assert c.post("/api/queue/run", json={}).status_code == 400
            assert len(batch._queues) == before


class TestQueueFlow:
    def test_upload_run_download(self, client):
        resp = _upload(
            client,
            ("a.png", transparent_png((40, 20)), "image/png"),
            ("notes.txt", b"hello", "text/plain"),
            ("b.jpg", image_bytes((100, 50), fmt="JPEG"), "image/jpeg"),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert [i["filename"] for i in body["added"]] == ["a.png", "b.jpg"]
        assert body["skipped"] == ["notes.txt"]
        assert body["added"][0]["status"] == "pending"
        assert body["added"][0]["metadata"]["width"] == 40

        resp = client.post("/api/queue/run", json={"format": "jpeg", "width": 20, "quality": 80})
        assert resp.status_code == 200

        queue = client.get("/api/queue").json()
        assert [i["status"] for i in queue["items"]] == ["completed", "completed"]
        assert queue["all_completed"] is True
        assert queue["running"] is False
        assert queue["description"] == DESCRIPTION_FALLBACK

        first = queue["items"][0]
        assert first["download_filename"] == "converted-a.jpg"
        resp = client.get(f"/api/queue/{first['id']}/download")
        assert resp.status_code == 200
        assert "converted-a.jpg" in resp.headers["content-disposition"]
        img = open_bytes(resp.content)
        assert img.size == (20, 10)
        assert min(img.getpixel((0, 0))) >= 200

        resp = client.get(first["output_url"])
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"

        resp = client.get("/api/queue/archive")
        assert resp.status_code == 200
        assert "pixelflex-converted-" in resp.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
            assert sorted(zf.namelist()) == ["a.jpg", "b.jpg"]

    def test_failed_item_is_reported(self, client):
        _upload(
            client,
            ("ok.png", image_bytes(), "image/png"),
            ("bad.png", truncated_png(), "image/png"),
        )
        client.post("/api/queue/run", json={"format": "png"})
        items = client.get("/api/queue").json()["items"]
        assert [i["status"] for i in items] == ["completed", "failed"]
        assert items[1]["error"]
        assert items[1]["output_url"] is None
        assert client.get(f"/api/queue/{items[1]['id']}/download").status_code == 409

    def test_archive_without_completed_items(self, client):
        _upload(client, ("ok.png", image_bytes(), "image/png"))
        assert client.get("/api/queue/archive").status_code == 404

    def test_remove_and_clear(self, client):
        body = _upload(
            client,
            ("a.png", image_bytes(), "image/png"),
            ("b.png", image_bytes(), "image/png"),
        ).json()
        first = body["added"][0]
        assert client.delete(f"/api/queue/{first['id']}").status_code == 200
        assert client.get(first["preview_url"]).status_code == 404
        assert client.delete(f"/api/queue/{first['id']}").status_code == 404
        assert len(client.get("/api/queue").json()["items"]) == 1
        assert client.delete("/api/queue").json() == {"ok": True}
        assert client.get("/api/queue").json()["items"] == []

    def test_unreadable_duplicate_name_is_reported(self, client):
        body = _upload(
            client,
            ("dup.png", image_bytes(), "image/png"),
            ("dup.png", b"not an image", "image/png"),
        ).json()
        assert [i["filename"] for i in body["added"]] == ["dup.png"]
        assert body["skipped"] == ["dup.png"]
        assert body["queue_size"] == 1

    def test_preview_serves_source(self, client):
        data = image_bytes()
        item = _upload(client, ("a.png", data, "image/png")).json()["added"][0]
        resp = client.get(f"/api/queue/{item['id']}/preview")
        assert resp.content == data


class TestRunValidation:
    def test_empty_queue(self, client):
        assert client.post("/api/queue/run", json={}).status_code == 400

    @pytest.mark.parametrize(
        "body,status",
        [
            ({"quality": 0}, 422),
            ({"width": 0}, 422),
            ({"format": "tiff"}, 400),
            ({"background": "nonsense"}, 400),
        ],
    )
    def test_bad_options(self, client, body, status):
        _upload(client, ("a.png", image_bytes(), "image/png"))
        assert client.post("/api/queue/run", json=body).status_code == status

    def test_unknown_item(self, client):
        assert client.get("/api/queue/does-not-exist").status_code == 404

    def test_sessions_are_isolated(self, client):
        _upload(client, ("a.png", image_bytes(), "image/png"))
        other = client.get("/api/queue", headers={"X-Session-ID": str(uuid.uuid4())})
        assert other.json()["items"] == []


class TestRunControl:
    def test_cancel_with_nothing_running(self, client):
        assert client.post("/api/queue/cancel").json()["ok"] is False

    def test_cancel_sets_the_registered_event(self, client, monkeypatch):
        sid = client.headers["X-Session-ID"]
        event = threading.Event()
        monkeypatch.setitem(routes._cancel_events, sid, event)
        assert client.post("/api/queue/cancel").json() == {"ok": True}
        assert event.is_set()

    def test_second_start_is_rejected_while_one_is_pending(self, client, monkeypatch):
        _upload(client, ("a.png", image_bytes(), "image/png"))
        sid = client.headers["X-Session-ID"]
        pending = threading.Event()
        monkeypatch.setitem(routes._cancel_events, sid, pending)
        assert client.post("/api/queue/run", json={}).status_code == 409
        # the pending run keeps its own cancel event
        assert routes._cancel_events[sid] is pending
        assert client.get("/api/queue").json()["items"][0]["status"] == "pending"

    def test_finished_run_unregisters_its_event(self, client):
        _upload(client, ("a.png", image_bytes(), "image/png"))
        assert client.post("/api/queue/run", json={}).status_code == 200
        assert client.headers["X-Session-ID"] not in routes._cancel_events
        assert client.post("/api/queue/cancel").json()["ok"] is False
