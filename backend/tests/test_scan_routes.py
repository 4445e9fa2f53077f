"""
FloraLens Backend - Scan API Endpoint Tests
=============================================

What:  End-to-end tests of /api/scans through the FastAPI app.
How:   httpx AsyncClient over ASGITransport, real JWTs, real SQLite schema,
       fake storage and vision adapters (see conftest.py).

What we test:
    ✅ Upload returns scanId, signed imageUrl and all seven analysis fields
    ✅ Size cap: 10 MiB accepted, 10 MiB + 1 byte rejected before side effects
    ✅ Oversized Content-Length rejected before auth and body parsing
    ✅ Same-millisecond uploads of one filename never share a stored object
    ✅ Missing file part, missing/invalid token
    ✅ Ownership: 403 without scan data, 404 for unknown ids
    ✅ History is per-user, newest first, with freshly signed URLs
    ✅ Failed analysis leaves no row and (by default) no stored object
"""

import re
import uuid
from types import SimpleNamespace

import pytest

from app.config import settings
from app.middleware.upload_limit import MULTIPART_OVERHEAD
import app.services.scan_service as scan_service_module
from app.services.vision_base import AnalysisFailure

TEN_MIB = 10 * 1024 * 1024

ANALYSIS_FIELDS = {
    "species",
    "commonName",
    "isSafeToEat",
    "isSafeToTouch",
    "confidence",
    "warnings",
    "description",
}


def image_part(data: bytes, filename: str = "leaf.jpg", content_type: str = "image/jpeg"):
    return {"file": (filename, data, content_type)}


async def upload(client, headers, data: bytes, filename: str = "leaf.jpg"):
    return await client.post(
        "/api/scans/upload",
        files=image_part(data, filename),
        headers=headers,
    )


class TestUpload:
    """POST /api/scans/upload"""

    @pytest.mark.asyncio
    async def test_upload_returns_analysis_and_signed_url(
        self, test_client, make_token, sample_image_bytes, fake_storage, fake_vision
    ):
        response = await upload(test_client, make_token("user-1"), sample_image_bytes)

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"scanId", "imageUrl", "analysis"}
        assert set(body["analysis"]) == ANALYSIS_FIELDS
        assert body["analysis"]["species"] == "Amanita muscaria"
        assert body["analysis"]["isSafeToEat"] is False
        assert body["analysis"]["confidence"] == "high"
        uuid.UUID(body["scanId"])

        key = fake_storage.put_calls[0]
        assert re.fullmatch(r"scans/user-1/\d+-[0-9a-f]{8}-leaf\.jpg", key)
        assert fake_storage.objects[key] == sample_image_bytes
        assert body["imageUrl"].startswith(f"https://signed.test/{key}")
        assert fake_vision.calls == [(len(sample_image_bytes), "image/jpeg")]

    @pytest.mark.asyncio
    async def test_uploaded_scan_is_retrievable(self, test_client, make_token, sample_image_bytes):
        headers = make_token("user-1")
        created = (await upload(test_client, headers, sample_image_bytes)).json()

        response = await test_client.get(f"/api/scans/{created['scanId']}", headers=headers)

        assert response.status_code == 200
        scan = response.json()
        assert scan["id"] == created["scanId"]
        assert scan["userId"] == "user-1"
        assert scan["commonName"] == "Fly agaric"
        assert scan["warnings"] == created["analysis"]["warnings"]

    @pytest.mark.asyncio
    async def test_exactly_ten_mib_is_accepted(self, test_client, make_token):
        response = await upload(test_client, make_token("user-1"), b"\x00" * TEN_MIB)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_over_ten_mib_rejected_before_side_effects(
        self, test_client, make_token, fake_storage, fake_vision
    ):
        headers = make_token("user-1")
        response = await upload(test_client, headers, b"\x00" * (TEN_MIB + 1))

        assert response.status_code == 413
        body = response.json()
        assert body["error"] == "payload_too_large"
        assert body["message"] == "File too large"
        assert body["details"]["max_size_bytes"] == TEN_MIB
        assert fake_storage.put_calls == []
        assert fake_vision.calls == []
        assert (await test_client.get("/api/scans", headers=headers)).json() == []

    @pytest.mark.asyncio
    async def test_missing_file_part(self, test_client, make_token, sample_image_bytes, fake_storage):
        # Wrong field name: the part is ignored and no `file` arrives
        response = await test_client.post(
            "/api/scans/upload",
            files={"image": ("leaf.jpg", sample_image_bytes, "image/jpeg")},
            headers=make_token("user-1"),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "No file provided"
        assert fake_storage.put_calls == []

    @pytest.mark.asyncio
    async def test_empty_file_part(self, test_client, make_token, fake_storage):
        response = await upload(test_client, make_token("user-1"), b"")

        assert response.status_code == 400
        assert fake_storage.put_calls == []

    @pytest.mark.asyncio
    async def test_analysis_failure_leaves_nothing_behind(
        self, test_client, make_token, sample_image_bytes, fake_storage, fake_vision
    ):
        fake_vision.outcome = AnalysisFailure(reason="schema: 2 validation errors")
        headers = make_token("user-1")

        response = await upload(test_client, headers, sample_image_bytes)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "analysis_failed"
        assert "schema" not in body["message"]
        key = fake_storage.put_calls[0]
        assert fake_storage.deleted == [key]
        assert fake_storage.objects == {}
        assert (await test_client.get("/api/scans", headers=headers)).json() == []

    @pytest.mark.asyncio
    async def test_analysis_failure_without_compensation_keeps_object(
        self, test_client, make_token, sample_image_bytes, fake_storage, fake_vision, monkeypatch
    ):
        monkeypatch.setattr(settings, "compensate_failed_uploads", False)
        fake_vision.outcome = AnalysisFailure(reason="transport: DeadlineExceeded")

        response = await upload(test_client, make_token("user-1"), sample_image_bytes)

        assert response.status_code == 500
        assert fake_storage.deleted == []
        assert len(fake_storage.objects) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_skips_analysis(
        self, test_client, make_token, sample_image_bytes, fake_storage, fake_vision
    ):
        fake_storage.fail_put = True

        response = await upload(test_client, make_token("user-1"), sample_image_bytes)

        assert response.status_code == 500
        assert response.json()["error"] == "server_error"
        assert fake_vision.calls == []

    @pytest.mark.asyncio
    async def test_same_millisecond_uploads_keep_separate_objects(
        self, test_client, make_token, sample_image_bytes, fake_storage, fake_vision, monkeypatch
    ):
        monkeypatch.setattr(scan_service_module, "time", SimpleNamespace(time=lambda: 1718000000.0))
        headers = make_token("user-1")

        first = await upload(test_client, headers, sample_image_bytes, filename="photo.jpg")
        fake_vision.outcome = AnalysisFailure(reason="transport: DeadlineExceeded")
        second = await upload(test_client, headers, b"other-bytes", filename="photo.jpg")

        assert first.status_code == 200
        assert second.status_code == 500
        first_key, second_key = fake_storage.put_calls
        assert first_key != second_key
        assert first_key.startswith("scans/user-1/1718000000000-")
        assert second_key.startswith("scans/user-1/1718000000000-")
        assert fake_storage.deleted == [second_key]
        assert fake_storage.objects == {first_key: sample_image_bytes}

        scans = (await test_client.get("/api/scans", headers=headers)).json()
        assert [s["imageKey"] for s in scans] == [first_key]

    @pytest.mark.asyncio
    async def test_oversized_content_length_rejected_before_auth(
        self, test_client, fake_storage, fake_vision
    ):
        body = b"\x00" * (TEN_MIB + MULTIPART_OVERHEAD + 1)

        response = await test_client.post("/api/scans/upload", files=image_part(body))

        assert response.status_code == 413
        payload = response.json()
        assert payload["error"] == "payload_too_large"
        assert payload["details"]["max_size_bytes"] == TEN_MIB
        assert payload["requestId"] == response.headers["X-Request-ID"]
        assert fake_storage.put_calls == []
        assert fake_vision.calls == []

    @pytest.mark.asyncio
    async def test_oversized_content_length_with_token(
        self, test_client, make_token, fake_storage
    ):
        body = b"\x00" * (TEN_MIB + MULTIPART_OVERHEAD + 1)

        response = await upload(test_client, make_token("user-1"), body)

        assert response.status_code == 413
        assert response.json()["message"] == "File too large"
        assert fake_storage.put_calls == []


class TestAuthentication:
    """Every /api/scans route requires a valid bearer token."""

    @pytest.mark.asyncio
    async def test_upload_without_token(self, test_client, sample_image_bytes, fake_storage):
        response = await test_client.post("/api/scans/upload", files=image_part(sample_image_bytes))

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error"] == "unauthorized"
        assert fake_storage.put_calls == []

    @pytest.mark.asyncio
    async def test_list_with_garbage_token(self, test_client):
        response = await test_client.get(
            "/api/scans",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_get_without_token(self, test_client):
        response = await test_client.get(f"/api/scans/{uuid.uuid4()}")
        assert response.status_code == 401


class TestRetrieval:
    """GET /api/scans and GET /api/scans/{id}"""

    @pytest.mark.asyncio
    async def test_list_is_newest_first_and_per_user(self, test_client, make_token, sample_image_bytes):
        alice, bob = make_token("alice"), make_token("bob")
        ids = []
        for name in ("one.jpg", "two.jpg", "three.jpg"):
            ids.append((await upload(test_client, alice, sample_image_bytes, name)).json()["scanId"])
        await upload(test_client, bob, sample_image_bytes, "bob.jpg")

        response = await test_client.get("/api/scans", headers=alice)

        assert response.status_code == 200
        scans = response.json()
        assert [s["id"] for s in scans] == list(reversed(ids))
        assert all(s["userId"] == "alice" for s in scans)

    @pytest.mark.asyncio
    async def test_list_resigns_image_urls(self, test_client, make_token, sample_image_bytes):
        headers = make_token("user-1")
        created = (await upload(test_client, headers, sample_image_bytes)).json()

        listed = (await test_client.get("/api/scans", headers=headers)).json()[0]

        assert listed["imageKey"] in listed["imageUrl"]
        assert listed["imageUrl"] != created["imageUrl"]

    @pytest.mark.asyncio
    async def test_empty_history(self, test_client, make_token):
        response = await test_client.get("/api/scans", headers=make_token("nobody"))
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_foreign_scan_is_forbidden_without_data(
        self, test_client, make_token, sample_image_bytes
    ):
        created = (await upload(test_client, make_token("alice"), sample_image_bytes)).json()

        response = await test_client.get(
            f"/api/scans/{created['scanId']}",
            headers=make_token("mallory"),
        )

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "forbidden"
        assert body["message"] == "Unauthorized"
        assert not ANALYSIS_FIELDS & set(body)
        assert "imageUrl" not in body
        assert "details" not in body

    @pytest.mark.asyncio
    async def test_unknown_scan_is_not_found(self, test_client, make_token):
        response = await test_client.get(
            f"/api/scans/{uuid.uuid4()}",
            headers={**make_token("user-1"), "X-Request-ID": "trace-42"},
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Scan not found"
        assert response.json()["requestId"] == "trace-42"
        assert response.headers["X-Request-ID"] == "trace-42"

    @pytest.mark.asyncio
    async def test_malformed_scan_id(self, test_client, make_token):
        response = await test_client.get("/api/scans/not-a-uuid", headers=make_token("user-1"))
        assert response.status_code == 422
