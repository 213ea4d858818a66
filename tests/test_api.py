"""Tests for the HTTP routes."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import FakeAnalyzer, FakeSynthesizer
from dreamboat.api.deps import (
    get_db,
    get_gemini,
    get_queues,
    get_storage,
    get_validator,
)
from dreamboat.main import app
from dreamboat.models import ValidationStatus
from dreamboat.services.photo_validator import PhotoValidator
from dreamboat.workers.base import RetryExecutor, is_rate_limit_error
from dreamboat.workers.rate_limiter import RateLimiter

OWNER = {"X-Owner-Id": "user_1"}

CLEAN = json.dumps({
    "multiple_people": False,
    "face_covered_or_blurred": False,
    "poor_lighting": False,
    "is_screenshot": False,
    "face_partially_covered": False,
})


class FakeGemini(FakeSynthesizer):
    def __init__(self, analysis: str = CLEAN):
        super().__init__()
        self.analyzer = FakeAnalyzer(analysis)

    async def analyze(self, image_bytes, criteria_prompt):
        return await self.analyzer.analyze(image_bytes, criteria_prompt)


@pytest.fixture
def gemini():
    return FakeGemini()


@pytest.fixture
def queues():
    manager = MagicMock()
    manager.enqueue_sample_generation.return_value.id = "rq_sample_1"
    manager.enqueue_generation.return_value.id = "rq_gen_1"
    return manager


@pytest.fixture
def client(db, gemini, queues, storage):
    async def no_sleep(seconds):
        return None

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_gemini] = lambda: gemini
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_queues] = lambda: queues
    app.dependency_overrides[get_validator] = lambda: PhotoValidator(
        db,
        storage,
        gemini,
        limiter=RateLimiter(0.0, sleep=no_sleep),
        retry=RetryExecutor(retry_if=is_rate_limit_error, sleep=no_sleep),
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestPhotoRoutes:
    """Upload registration, validation and bypass."""

    def test_create_photo(self, client):
        response = client.post("/api/v1/photos", json={"storage_key": "uploads/user_1/a.jpg"}, headers=OWNER)

        assert response.status_code == 201
        body = response.json()
        assert body["id"].startswith("photo_")
        assert body["validation_status"] == ValidationStatus.PENDING

    def test_missing_upload_is_400(self, client, storage):
        storage.missing.add("uploads/user_1/gone.jpg")
        response = client.post("/api/v1/photos", json={"storage_key": "uploads/user_1/gone.jpg"}, headers=OWNER)
        assert response.status_code == 400

    def test_owner_header_required(self, client):
        response = client.post("/api/v1/photos", json={"storage_key": "uploads/a.jpg"})
        assert response.status_code == 422

    def test_validate_queues_sample(self, client, make_photo, queues):
        photo = make_photo(status=ValidationStatus.PENDING)

        response = client.post(f"/api/v1/photos/{photo.id}/validate", headers=OWNER)

        assert response.status_code == 200
        body = response.json()
        assert body["is_valid"] is True
        assert body["sample_job_id"] == "rq_sample_1"
        queues.enqueue_sample_generation.assert_called_once_with("user_1", photo.id)

    def test_invalid_photo_does_not_queue_sample(self, client, make_photo, gemini, queues):
        gemini.analyzer = FakeAnalyzer(CLEAN.replace('"poor_lighting": false', '"poor_lighting": true'))
        photo = make_photo(status=ValidationStatus.PENDING)

        body = client.post(f"/api/v1/photos/{photo.id}/validate", headers=OWNER).json()

        assert body["is_valid"] is False
        assert body["warnings"] == ["poor_lighting"]
        assert body["sample_job_id"] is None
        queues.enqueue_sample_generation.assert_not_called()

    def test_existing_sample_not_requeued(self, client, make_photo, make_result, queues):
        make_result(is_sample=True)
        photo = make_photo(status=ValidationStatus.PENDING)

        body = client.post(f"/api/v1/photos/{photo.id}/validate", headers=OWNER).json()

        assert body["sample_job_id"] is None
        queues.enqueue_sample_generation.assert_not_called()

    def test_redis_outage_does_not_fail_validation(self, client, make_photo, queues):
        queues.enqueue_sample_generation.side_effect = RedisConnectionError("down")
        photo = make_photo(status=ValidationStatus.PENDING)

        response = client.post(f"/api/v1/photos/{photo.id}/validate", headers=OWNER)

        assert response.status_code == 200
        assert response.json()["is_valid"] is True

    def test_validate_foreign_photo_404(self, client, make_photo):
        photo = make_photo(owner_id="user_2", status=ValidationStatus.PENDING)
        response = client.post(f"/api/v1/photos/{photo.id}/validate", headers=OWNER)
        assert response.status_code == 404

    def test_bypass(self, client, make_photo):
        photo = make_photo(status=ValidationStatus.FAILED)

        response = client.post("/api/v1/photos/bypass", json={"photo_ids": [photo.id]}, headers=OWNER)

        assert response.status_code == 200
        assert response.json()["bypassed"] == 1


class TestGenerateRoutes:
    """Payment gating over HTTP."""

    def test_generate_without_credit_is_402(self, client, make_photo):
        photo = make_photo()
        response = client.post(
            "/api/v1/generate",
            json={"photo_ids": [photo.id], "scenarios": ["beach"]},
            headers=OWNER,
        )
        assert response.status_code == 402

    def test_generate_inline(self, client, make_photo, make_credit):
        photo = make_photo()
        make_credit()

        response = client.post(
            "/api/v1/generate",
            json={"photo_ids": [photo.id], "scenarios": ["beach", "gym"]},
            headers=OWNER,
        )

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "completed"
        assert body["completed_tasks"] == 2
        assert body["partial_failure"] is False
        assert [o["scenario"] for o in body["outcomes"]] == ["beach", "gym"]
        assert len(body["auto_selected"]) == 2

    def test_reusing_redeemed_reference_is_409(self, client, make_photo, make_credit):
        photo = make_photo()
        first = make_credit(minutes_ago=10)
        make_credit(minutes_ago=1)
        payload = {"photo_ids": [photo.id], "scenarios": ["beach"], "payment_reference": first.id}

        assert client.post("/api/v1/generate", json=payload, headers=OWNER).status_code == 202
        assert client.post("/api/v1/generate", json=payload, headers=OWNER).status_code == 409

    def test_unknown_reference_is_404(self, client, make_photo, make_credit):
        photo = make_photo()
        make_credit()
        payload = {"photo_ids": [photo.id], "scenarios": ["beach"], "payment_reference": "pay_nope"}

        assert client.post("/api/v1/generate", json=payload, headers=OWNER).status_code == 404

    def test_unvalidated_photo_is_400(self, client, make_photo, make_credit):
        photo = make_photo(status=ValidationStatus.PENDING)
        make_credit()
        response = client.post(
            "/api/v1/generate",
            json={"photo_ids": [photo.id], "scenarios": ["beach"]},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_empty_scenarios_rejected(self, client, make_photo):
        response = client.post(
            "/api/v1/generate",
            json={"photo_ids": [make_photo().id], "scenarios": []},
            headers=OWNER,
        )
        assert response.status_code == 422

    def test_queued_generation(self, client, make_photo, make_credit, queues):
        photo = make_photo()
        make_credit()

        response = client.post(
            "/api/v1/generate",
            json={"photo_ids": [photo.id], "scenarios": ["beach"], "queue": True},
            headers=OWNER,
        )

        assert response.status_code == 202
        assert response.json()["rq_job_id"] == "rq_gen_1"
        queues.enqueue_generation.assert_called_once()


class TestJobAndProfileRoutes:
    """Polling, selections and payments."""

    def _generate(self, client, make_photo, make_credit, scenarios=("beach", "gym")):
        photo = make_photo()
        make_credit()
        return client.post(
            "/api/v1/generate",
            json={"photo_ids": [photo.id], "scenarios": list(scenarios)},
            headers=OWNER,
        ).json()

    def test_job_status_and_listing(self, client, make_photo, make_credit):
        summary = self._generate(client, make_photo, make_credit)

        job = client.get(f"/api/v1/jobs/{summary['job_id']}").json()
        assert job["status"] == "completed"
        assert job["completed_tasks"] == job["total_tasks"] == 2

        listed = client.get("/api/v1/jobs", params={"owner_id": "user_1"}).json()
        assert [j["id"] for j in listed] == [summary["job_id"]]

        assert client.get("/api/v1/jobs/active", headers=OWNER).json() is None

    def test_unknown_job_404(self, client):
        assert client.get("/api/v1/jobs/gen_missing").status_code == 404

    def test_queue_job_status(self, client, queues):
        queues.get_job_status.return_value = {"found": False, "status": "unknown", "message": "Job x not found"}
        response = client.get("/api/v1/jobs/queue/x")
        assert response.status_code == 200
        assert response.json()["found"] is False

    def test_selections_round_trip(self, client, make_photo, make_credit):
        self._generate(client, make_photo, make_credit)
        selected = client.get("/api/v1/profile/selections", headers=OWNER).json()
        assert [r["profile_order"] for r in selected] == [1, 2]

        first = selected[0]["id"]
        updated = client.put(
            "/api/v1/profile/selections",
            json={"selections": [{"result_id": first, "order": 4}]},
            headers=OWNER,
        ).json()
        assert [(r["id"], r["profile_order"]) for r in updated] == [(first, 4)]

        toggled = client.post("/api/v1/profile/toggle", json={"result_id": first, "order": None}, headers=OWNER)
        assert toggled.json()["profile_order"] is None

    def test_bad_selection_is_400(self, client, make_result):
        a, b = make_result(), make_result()
        response = client.put(
            "/api/v1/profile/selections",
            json={"selections": [{"result_id": a.id, "order": 1}, {"result_id": b.id, "order": 1}]},
            headers=OWNER,
        )
        assert response.status_code == 400

    def test_payment_access_and_history(self, client, make_credit):
        assert client.get("/api/v1/payments/access", headers=OWNER).json()["has_access"] is False

        credit = make_credit()
        access = client.get("/api/v1/payments/access", headers=OWNER).json()
        assert access["has_access"] is True
        assert access["credit"]["id"] == credit.id

        history = client.get("/api/v1/payments/history", headers=OWNER).json()
        assert [c["id"] for c in history] == [credit.id]


class TestHealth:
    def test_health_reports_degraded_redis(self, client, session_factory):
        with patch("dreamboat.main.SessionLocal", session_factory), \
                patch("dreamboat.main.redis_health_check", return_value={"connected": False, "error": "refused"}):
            body = client.get("/health").json()

        assert body["services"]["database"] == "ok"
        assert body["services"]["redis"].startswith("error")
        assert body["status"] == "degraded"
