import pytest
from fastapi.testclient import TestClient

from phototriage.library.models import MediaKind
from phototriage.ui.app import app, load_library

from fakes import make_asset, make_photos


@pytest.fixture
def client(library, source):
    source.add(*make_photos(3), make_asset("clip", 10, kind=MediaKind.VIDEO))
    load_library(library)
    yield TestClient(app)
    load_library(None)


def test_no_library_loaded():
    load_library(None)
    response = TestClient(app).get("/api/counts")
    assert response.status_code == 503


def test_status(client):
    data = client.get("/api/status").json()
    assert data["authorization"] == "authorized"
    assert data["scan_phase"] == "idle"
    assert data["deletion_queue_count"] == 0


def test_counts(client):
    assert client.get("/api/counts").json() == {
        "photos": 3,
        "screenshots": 0,
        "videos": 1,
        "flagged": 0,
    }


def test_page(client):
    token = client.post("/api/category/photos").json()["token"]
    data = client.get("/api/page", params={"category": "photos", "page": 0, "token": token}).json()

    assert [item["id"] for item in data["items"]] == ["p02", "p01", "p00"]
    assert data["stale"] is False


def test_stale_page(client):
    token = client.post("/api/category/photos").json()["token"]
    client.post("/api/category/videos")

    data = client.get("/api/page", params={"category": "photos", "token": token}).json()
    assert data["stale"] is True
    assert data["items"] == []


def test_bad_category_and_page(client):
    assert client.get("/api/page", params={"category": "music"}).status_code == 400
    assert client.get("/api/page", params={"category": "photos", "page": -1}).status_code == 400


def test_image(client):
    response = client.get("/api/assets/p01/image")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.content[:2] == b"\xff\xd8"

    assert client.get("/api/assets/missing/image").status_code == 404


def test_keep_and_delete(client, source):
    assert client.post("/api/keep", json={"identifier": "p02"}).json()["persisted"] is True
    queued = client.post("/api/deletions", json={"identifier": "p01"}).json()
    assert queued["deletion_queue_count"] == 1

    assert client.get("/api/counts").json()["photos"] == 1

    flushed = client.post("/api/deletions/flush").json()
    assert flushed["removed_count"] == 1
    assert "p01" not in source.assets


def test_clear_deletions(client):
    client.post("/api/deletions", json={"identifier": "p01"})
    assert client.post("/api/deletions/clear").json() == {"restored": ["p01"]}
    assert client.post("/api/deletions/retry").json() == {"requeued": 0}


def test_albums(client, source):
    created = client.post("/api/albums", json={"title": "Trips"}).json()
    assert created["id"] == "Trips"

    moved = client.post("/api/move", json={"identifier": "p00", "collection_id": "Trips"}).json()
    assert moved["success"] is True
    assert source.collections["Trips"] == ["p00"]

    moved = client.post("/api/move", json={"identifier": "p01", "new_album_title": "Pets"}).json()
    assert moved["success"] is True
    assert [a["title"] for a in client.get("/api/albums").json()["albums"]] == ["Pets", "Trips"]

    assert client.post("/api/move", json={"identifier": "p01"}).status_code == 400


def test_settings(client):
    assert client.get("/api/settings").json()["sensitivity_threshold"] == 0.8

    updated = client.put("/api/settings", json={"sensitivity_threshold": 0.6}).json()
    assert updated["sensitivity_threshold"] == 0.6

    assert client.put("/api/settings", json={"batch_deletion_size": 99}).status_code == 400
    assert client.post("/api/settings/reset").json()["sensitivity_threshold"] == 0.8


def test_scan_endpoints(client, library):
    assert client.post("/api/scan").json()["started"] is True
    assert library.scanner.wait(timeout=10.0)
    assert client.get("/api/status").json()["scan_phase"] == "completed"
    assert client.delete("/api/scan").json() == {"stopping": True}
