import hashlib
import json

import pytest
from fastapi.testclient import TestClient

from upload_engine.main import create_app

CHUNK = 1024
AUTH = {"Authorization": "Bearer test-token"}


@pytest.fixture()
def api(settings):
    with TestClient(create_app(settings)) as client:
        yield client


def init(api, size, chunk_size=CHUNK, filename="lecture.mp4"):
    response = api.post(
        "/upload/init",
        json={"filename": filename, "fileSize": size, "contentType": "video/mp4", "chunkSize": chunk_size},
        headers=AUTH,
    )
    assert response.status_code == 200, response.text
    return response.json()


def send_chunk(api, session_id, index, data, total_chunks):
    return api.post(
        f"/upload/chunk/{session_id}",
        files={"chunk": (f"chunk_{index}", data, "application/octet-stream")},
        data={"chunkIndex": str(index), "totalChunks": str(total_chunks)},
        headers=AUTH,
    )


def test_health_needs_no_credential(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["sweeper"] == "running"


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}])
def test_upload_routes_require_accepted_bearer(api, headers):
    response = api.get("/upload/sessions", headers=headers)
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


def test_full_chunked_upload_over_http(api):
    data = bytes(range(256)) * 10
    session = init(api, len(data))
    assert session["chunkSize"] == CHUNK
    assert session["totalChunks"] == 3
    session_id = session["sessionId"]

    for index in (2, 0, 1):
        response = send_chunk(api, session_id, index, data[index * CHUNK:(index + 1) * CHUNK], 3)
        assert response.status_code == 200, response.text
        assert response.json()["success"] is True

    status = api.get(f"/upload/status/{session_id}", headers=AUTH).json()
    assert status["uploadedChunks"] == 3
    assert status["missingChunks"] == []
    assert status["totalSize"] == len(data)

    response = api.post(f"/upload/complete/{session_id}", json={"title": "Week 1"}, headers=AUTH)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "completed"
    assert body["alreadyCompleted"] is False
    assert body["asset"]["sizeBytes"] == len(data)
    assert body["asset"]["contentHash"] == hashlib.sha256(data).hexdigest()
    assert body["asset"]["metadata"] == {"title": "Week 1"}

    again = api.post(f"/upload/complete/{session_id}", json={"title": "ignored"}, headers=AUTH).json()
    assert again["alreadyCompleted"] is True
    assert again["asset"]["assetId"] == body["asset"]["assetId"]

    asset = api.get(f"/upload/assets/{body['asset']['assetId']}", headers=AUTH)
    assert asset.status_code == 200
    assert asset.json()["fileName"] == "lecture.mp4"


def test_complete_before_all_chunks_is_conflict(api):
    session = init(api, 2500)
    send_chunk(api, session["sessionId"], 0, b"a" * CHUNK, 3)

    response = api.post(f"/upload/complete/{session['sessionId']}", json={}, headers=AUTH)

    assert response.status_code == 409
    assert response.json()["error"] == "INCOMPLETE"
    assert response.json()["missingChunks"] == [1, 2]


def test_invalid_chunks_are_rejected(api):
    session = init(api, 2500)
    session_id = session["sessionId"]

    assert send_chunk(api, session_id, 5, b"a" * CHUNK, 3).status_code == 400
    assert send_chunk(api, session_id, 0, b"a" * 10, 3).status_code == 400
    assert send_chunk(api, "no-such-session", 0, b"a" * CHUNK, 3).status_code == 404


def test_init_validation(api, settings):
    response = api.post("/upload/init", json={"filename": "x.bin", "fileSize": 0}, headers=AUTH)
    assert response.status_code == 400

    response = api.post(
        "/upload/init",
        json={"filename": "x.bin", "fileSize": settings.MAX_UPLOAD_SIZE + 1},
        headers=AUTH,
    )
    assert response.status_code == 413

    response = api.post("/upload/init", json={"fileSize": 10}, headers=AUTH)
    assert response.status_code == 422


def test_cancel_then_everything_is_not_found(api):
    session = init(api, 2500)
    session_id = session["sessionId"]

    response = api.delete(f"/upload/cancel/{session_id}", headers=AUTH)
    assert response.json() == {"sessionId": session_id, "status": "cancelled", "existed": True}

    again = api.delete(f"/upload/cancel/{session_id}", headers=AUTH)
    assert again.status_code == 200
    assert again.json()["existed"] is False

    assert api.get(f"/upload/status/{session_id}", headers=AUTH).status_code == 404
    assert send_chunk(api, session_id, 0, b"a" * CHUNK, 3).status_code == 404
    assert api.post(f"/upload/complete/{session_id}", json={}, headers=AUTH).status_code == 404


def test_simple_upload(api):
    response = api.post(
        "/upload/simple",
        files={"file": ("notes.pdf", b"%PDF-1.4 small", "application/pdf")},
        data={"metadata": json.dumps({"course": "cs101"})},
        headers=AUTH,
    )

    assert response.status_code == 201, response.text
    asset = response.json()["asset"]
    assert asset["contentType"] == "application/pdf"
    assert asset["metadata"] == {"course": "cs101"}

    sessions = api.get("/upload/sessions", params={"status": "completed"}, headers=AUTH).json()
    assert sessions["total"] == 1
    assert sessions["sessions"][0]["sessionId"] == asset["sessionId"]


def test_simple_upload_rejects_bad_metadata(api):
    response = api.post(
        "/upload/simple",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"metadata": "[1, 2]"},
        headers=AUTH,
    )
    assert response.status_code == 400


def test_unknown_asset(api):
    assert api.get("/upload/assets/nope", headers=AUTH).status_code == 404
