"""
HTTP tests against the full application (real lifespan, SQLite, local blobs)
"""
from uuid import uuid4

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from study_drive.core.database import async_session_maker
from study_drive.main import app
from study_drive.models import Subject, SubjectFile


@pytest_asyncio.fixture
async def client():
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


def _headers(user_id=None):
    return {"X-User-Id": user_id or f"user-{uuid4().hex[:12]}", "X-User-Email": "student@example.com"}


async def _upload(client, headers, name="notes.txt", content=b"hello", **data):
    return await client.post(
        "/drive/files",
        headers=headers,
        files={"file": (name, content, "text/plain")},
        data=data
    )


async def test_root_and_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    response = await client.get("/")
    assert response.json()["service"] == "Study Drive"


async def test_missing_identity_is_401(client):
    response = await client.get("/drive")
    assert response.status_code == 401
    assert response.json()["code"] == "AUTHENTICATION_REQUIRED"


async def test_drive_created_on_first_access(client):
    headers = _headers()
    response = await client.get("/drive", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["user_id"] == headers["X-User-Id"]
    assert body["storage_used"] == 0
    assert body["copy_policy"] == "REQUEST"

    response = await client.patch("/drive", headers=headers, json={"is_private": False, "copy_policy": "DENY"})
    assert response.json()["is_private"] is False
    assert response.json()["copy_policy"] == "DENY"

    assert (await client.get("/drive", headers=headers)).json()["id"] == body["id"]


async def test_duplicate_folder_is_409(client):
    headers = _headers()
    first = await client.post("/drive/folders", headers=headers, json={"name": "A"})
    assert first.status_code == 201
    assert first.json()["path"] == "/A"

    second = await client.post("/drive/folders", headers=headers, json={"name": "A"})
    assert second.status_code == 409
    assert second.json()["code"] == "DUPLICATE_PATH"


async def test_folder_move_into_descendant_is_400(client):
    headers = _headers()
    a = (await client.post("/drive/folders", headers=headers, json={"name": "A"})).json()
    b = (await client.post("/drive/folders", headers=headers, json={"name": "B", "parent_id": a["id"]})).json()

    response = await client.post(f"/drive/folders/{a['id']}/move", headers=headers, json={"parent_id": b["id"]})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_MOVE"

    detail = (await client.get(f"/drive/folders/{b['id']}", headers=headers)).json()
    assert [f["name"] for f in detail["breadcrumbs"]] == ["A", "B"]


async def test_upload_download_roundtrip(client):
    headers = _headers()
    folder = (await client.post("/drive/folders", headers=headers, json={"name": "Docs"})).json()

    response = await _upload(client, headers, folder_id=folder["id"])
    assert response.status_code == 201
    uploaded = response.json()
    assert uploaded["status"] == "created"
    assert uploaded["file"]["folder_id"] == folder["id"]
    file_id = uploaded["file"]["id"]

    response = await client.get(f"/drive/files/{file_id}/download", headers=headers)
    assert response.status_code == 200
    assert response.content == b"hello"
    assert response.headers["etag"] == f'"{uploaded["file"]["content_hash"]}"'

    bandwidth = (await client.get("/drive/bandwidth", headers=headers)).json()
    assert bandwidth["used"] == 5

    listing = (await client.get("/drive/files", headers=headers, params={"folder_id": folder["id"]})).json()
    assert [f["id"] for f in listing["items"]] == [file_id]


async def test_duplicate_upload_reuse(client):
    headers = _headers()
    first = (await _upload(client, headers, name="a.txt")).json()
    second = (await _upload(client, headers, name="b.txt", duplicate_policy="reuse")).json()

    assert second["status"] == "reused"
    assert second["file"]["id"] == first["file"]["id"]

    response = await _upload(client, headers, name="c.txt", duplicate_policy="reject")
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_CONTENT"


async def test_trash_restore_and_purge(client):
    headers = _headers()
    file_id = (await _upload(client, headers)).json()["file"]["id"]

    assert (await client.delete(f"/drive/files/{file_id}", headers=headers)).status_code == 200
    assert (await client.get(f"/drive/files/{file_id}", headers=headers)).status_code == 404

    trash = (await client.get("/drive/trash", headers=headers)).json()
    assert [(i["id"], i["type"]) for i in trash["items"]] == [(file_id, "file")]

    response = await client.post("/drive/trash/restore", headers=headers,
                                 json={"item_id": file_id, "item_type": "file"})
    assert response.json()["success"] is True
    assert (await client.get(f"/drive/files/{file_id}", headers=headers)).status_code == 200

    await client.delete(f"/drive/files/{file_id}", headers=headers)
    response = await client.delete(f"/drive/trash/file/{file_id}", headers=headers)
    assert response.json()["bytes_released"] == 5
    assert (await client.get("/drive", headers=headers)).json()["storage_used"] == 0

    response = await client.delete("/drive/trash/expired", headers=headers)
    assert response.json()["files"] == 0


async def test_foreign_file_is_404(client):
    owner = _headers()
    file_id = (await _upload(client, owner)).json()["file"]["id"]

    stranger = _headers()
    assert (await client.get(f"/drive/files/{file_id}", headers=stranger)).status_code == 404
    assert (await client.get(f"/drive/files/{file_id}/download", headers=stranger)).status_code == 404
    assert (await client.delete(f"/drive/files/{file_id}", headers=stranger)).status_code == 404


async def test_folder_create_rate_limit(client):
    headers = _headers()
    for i in range(20):
        response = await client.post("/drive/folders", headers=headers, json={"name": f"F{i}"})
        assert response.status_code == 201

    response = await client.post("/drive/folders", headers=headers, json={"name": "F20"})
    assert response.status_code == 429
    assert response.json()["code"] == "RATE_LIMITED"
    assert int(response.headers["retry-after"]) >= 1

    # Other operations and other users are unaffected
    assert (await client.get("/drive/folders", headers=headers)).json()["total"] == 20
    assert (await client.post("/drive/folders", headers=_headers(), json={"name": "F20"})).status_code == 201


async def test_activity_feed(client):
    headers = _headers()
    await client.post("/drive/folders", headers=headers, json={"name": "A"})
    await _upload(client, headers)

    body = (await client.get("/drive/activity", headers=headers)).json()
    assert [a["action"] for a in body["activities"]] == ["upload", "create"]
    assert body["stats"]["uploads"] == 1
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 2, "total_pages": 1}

    body = (await client.get("/drive/activity", headers=headers, params={"action": "upload"})).json()
    assert body["pagination"]["total"] == 1
    assert body["activities"][0]["metadata"]["size"] == 5

    response = await client.get("/drive/activity", headers=headers, params={"action": "teleport"})
    assert response.status_code == 400


async def test_search(client):
    headers = _headers()
    await client.post("/drive/folders", headers=headers, json={"name": "Physics"})
    await _upload(client, headers, name="physics-notes.txt")

    body = (await client.get("/drive/search", headers=headers, params={"q": "physics"})).json()
    assert [f["name"] for f in body["folders"]] == ["Physics"]
    assert [f["original_name"] for f in body["files"]] == ["physics-notes.txt"]

    body = (await client.get("/drive/search", headers=headers, params={"q": "physics", "type": "file"})).json()
    assert body["folders"] == []


async def test_subject_sync_endpoint(client):
    headers = _headers()
    user_id = headers["X-User-Id"]

    async with async_session_maker() as session:
        subject = Subject(user_id=user_id, name="Algebra")
        session.add(subject)
        await session.flush()
        key = f"subjects/{subject.id}/matrices.pdf"
        await app.state.store.put(key, b"matrices")
        session.add(SubjectFile(subject_id=subject.id, original_name="matrices.pdf",
                                storage_key=key, size_bytes=8, mime_type="application/pdf"))
        await session.commit()
        subject_id = subject.id

    response = await client.post(f"/drive/subjects/{subject_id}/sync", headers=headers)
    assert response.status_code == 200
    assert response.json()["synced"] == 1
    assert response.json()["failed"] == []

    response = await client.post(f"/drive/subjects/{subject_id}/sync", headers=headers)
    assert response.json()["synced"] == 0

    response = await client.post(f"/drive/subjects/{subject_id}/sync", headers=_headers())
    assert response.status_code == 404


async def test_copy_folder_and_file(client):
    headers = _headers()
    folder = (await client.post("/drive/folders", headers=headers, json={"name": "Docs"})).json()
    file_id = (await _upload(client, headers, folder_id=folder["id"])).json()["file"]["id"]

    response = await client.post(f"/drive/folders/{folder['id']}/copy", headers=headers, json={})
    assert response.status_code == 201
    body = response.json()
    assert body["folder"]["path"] == "/Docs (Copy)"
    assert [f["original_name"] for f in body["files"]] == ["notes.txt"]
    assert body["bytes_charged"] == 5

    response = await client.post(f"/drive/folders/{folder['id']}/copy", headers=headers, json={})
    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_PATH"

    response = await client.post(f"/drive/files/{file_id}/copy", headers=headers, json={"folder_id": None})
    assert response.status_code == 201
    assert response.json()["files"][0]["original_name"] == "notes (Copy).txt"

    assert (await client.get("/drive", headers=headers)).json()["storage_used"] == 15


async def test_bulk_endpoint(client):
    headers = _headers()
    first = (await _upload(client, headers, name="a.txt", content=b"a")).json()["file"]["id"]
    second = (await _upload(client, headers, name="b.txt", content=b"b")).json()["file"]["id"]

    response = await client.post("/drive/bulk", headers=headers, json={
        "operation": "delete", "item_type": "file", "item_ids": [first, second, "missing"]
    })
    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == [first, second]
    assert [(f["id"], f["code"]) for f in body["failed"]] == [("missing", "NOT_FOUND")]

    response = await client.post("/drive/bulk", headers=headers, json={
        "operation": "shred", "item_type": "file", "item_ids": [first]
    })
    assert response.status_code == 422

    response = await client.post("/drive/bulk", headers=headers, json={
        "operation": "delete", "item_type": "file", "item_ids": [f"id-{i}" for i in range(101)]
    })
    assert response.status_code == 422


async def test_copy_request_flow(client):
    owner = _headers()
    requester = _headers()
    folder = (await client.post("/drive/folders", headers=owner, json={"name": "Shared"})).json()
    await _upload(client, owner, folder_id=folder["id"])

    payload = {"owner_id": owner["X-User-Id"], "item_type": "folder", "target_id": folder["id"]}
    response = await client.post("/drive/copy-requests", headers=requester, json=payload)
    assert response.status_code == 201
    request_id = response.json()["request"]["id"]
    assert response.json()["request"]["status"] == "PENDING"
    assert response.json()["copied"] is None

    assert (await client.post("/drive/copy-requests", headers=requester, json=payload)).status_code == 409

    received = (await client.get("/drive/copy-requests", headers=owner, params={"direction": "received"})).json()
    assert [r["id"] for r in received["requests"]] == [request_id]
    assert received["pagination"]["total"] == 1

    response = await client.put(f"/drive/copy-requests/{request_id}", headers=requester, json={"action": "approve"})
    assert response.status_code == 403

    response = await client.put(f"/drive/copy-requests/{request_id}", headers=owner, json={"action": "approve"})
    assert response.status_code == 200
    assert response.json()["request"]["status"] == "APPROVED"
    assert response.json()["copied"]["folder"]["path"] == "/Shared"
    assert (await client.get("/drive", headers=requester)).json()["storage_used"] == 5

    await client.patch("/drive", headers=owner, json={"copy_policy": "DENY"})
    response = await client.post("/drive/copy-requests", headers=requester, json=payload)
    assert response.status_code == 403
    assert response.json()["code"] == "COPY_NOT_ALLOWED"
