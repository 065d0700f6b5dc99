"""Learning record endpoints and the cached enrollment summary."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import timedelta
from uuid import UUID

from fastapi.testclient import TestClient

from lms.api.dependencies import memory_store
from lms.services.clock import utc_now
from tests.conftest import (
    auth,
    mint_token,
    seed_admin,
    seed_course,
    seed_enrollment,
    seed_learner,
)


def _setup():
    learner = seed_learner(memory_store)
    course = seed_course(memory_store)
    enrollment = seed_enrollment(memory_store, learner, course)
    return learner, course, enrollment


def _log(client: TestClient, token: str, enrollment, **fields):
    body = {
        "enrollment_id": str(enrollment.id),
        "course_id": str(enrollment.course_id),
        "session_start_time": "2026-03-10T09:00:00Z",
    }
    body.update(fields)
    return client.post("/v1/learning-records", json=body, headers=auth(token))


def test_log_two_sessions_accumulates(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)

    r1 = _log(client, token, enrollment, session_duration_minutes=30)
    r2 = _log(
        client,
        token,
        enrollment,
        session_start_time="2026-03-10T11:00:00Z",
        session_duration_minutes=45,
    )

    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r1.json()["cumulative_learning_minutes"] == 30
    assert r2.json()["cumulative_learning_minutes"] == 75
    assert r2.json()["session_date"] == "2026-03-10"


def test_duration_from_timestamps(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    resp = _log(
        client,
        mint_token(learner),
        enrollment,
        session_start_time="2026-03-10T09:00:00Z",
        session_end_time="2026-03-10T09:40:00Z",
    )
    assert resp.status_code == 201
    assert resp.json()["session_duration_minutes"] == 40


def test_end_before_start_is_400(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    resp = _log(
        client,
        mint_token(learner),
        enrollment,
        session_start_time="2026-03-10T10:00:00Z",
        session_end_time="2026-03-10T09:00:00Z",
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidDuration"


def test_field_bounds_are_422(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)
    assert _log(client, token, enrollment, session_duration_minutes=0).status_code == 422
    assert _log(client, token, enrollment, session_duration_minutes=1441).status_code == 422
    assert _log(client, token, enrollment, understanding_level=6).status_code == 422
    assert _log(client, token, enrollment, learning_memo="x" * 1001).status_code == 422


def test_progress_completes_enrollment(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)

    resp = _log(client, token, enrollment, session_duration_minutes=20, progress_percentage=100)
    assert resp.status_code == 201

    e = client.get(f"/v1/enrollments/{enrollment.id}", headers=auth(token)).json()
    assert e["status"] == "completed"
    assert e["progress_percentage"] == 100


def test_cancelled_enrollment_is_400(client: TestClient) -> None:
    learner = seed_learner(memory_store)
    enrollment = seed_enrollment(
        memory_store, learner, seed_course(memory_store), status="cancelled"
    )
    resp = _log(client, mint_token(learner), enrollment, session_duration_minutes=20)
    assert resp.status_code == 400
    assert resp.json()["error"] == "CancelledEnrollment"


def test_learner_cannot_log_for_someone_else(client: TestClient) -> None:
    _, _, enrollment = _setup()
    stranger = seed_learner(memory_store)
    resp = _log(
        client,
        mint_token(stranger),
        enrollment,
        learner_id=str(enrollment.learner_id),
        session_duration_minutes=20,
    )
    assert resp.status_code == 403


def test_idempotent_replay(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)

    r1 = _log(client, token, enrollment, session_duration_minutes=30, idempotency_key="abc")
    r2 = _log(client, token, enrollment, session_duration_minutes=30, idempotency_key="abc")
    r3 = _log(client, token, enrollment, session_duration_minutes=50, idempotency_key="abc")

    assert r1.json()["id"] == r2.json()["id"]
    assert r3.status_code == 409
    assert r3.json()["error"] == "IdempotencyConflict"


def test_same_day_edit_and_delete(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)
    record = _log(client, token, enrollment, session_duration_minutes=30).json()

    resp = client.patch(
        f"/v1/learning-records/{record['id']}",
        json={"session_duration_minutes": 35, "learning_memo": "reviewed chapter 2"},
        headers=auth(token),
    )
    assert resp.status_code == 200
    assert resp.json()["cumulative_learning_minutes"] == 35
    assert resp.json()["learning_memo"] == "reviewed chapter 2"

    resp = client.delete(f"/v1/learning-records/{record['id']}", headers=auth(token))
    assert resp.status_code == 204
    resp = client.get(f"/v1/learning-records/{record['id']}", headers=auth(token))
    assert resp.status_code == 403


def _age_record(record_id: str, days: int) -> None:
    """Move a record's created_at into the past."""
    stored = asyncio.run(memory_store.records.get(UUID(record_id)))
    asyncio.run(
        memory_store.records.put(
            replace(stored, created_at=utc_now() - timedelta(days=days))
        )
    )


def test_stale_edit_window(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)
    record = _log(client, token, enrollment, session_duration_minutes=30).json()
    _age_record(record["id"], days=2)

    resp = client.patch(
        f"/v1/learning-records/{record['id']}",
        json={"learning_memo": "too late"},
        headers=auth(token),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "StaleEditWindow"

    admin = seed_admin(memory_store)
    resp = client.patch(
        f"/v1/learning-records/{record['id']}",
        json={"learning_memo": "fixed by admin"},
        headers=auth(mint_token(admin)),
    )
    assert resp.status_code == 200


def test_list_records_filters(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)
    _log(client, token, enrollment, session_start_time="2026-03-09T09:00:00Z")
    newer = _log(client, token, enrollment, session_start_time="2026-03-11T09:00:00Z").json()

    resp = client.get(
        "/v1/learning-records",
        params={"enrollment_id": str(enrollment.id), "date_from": "2026-03-10"},
        headers=auth(token),
    )
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [newer["id"]]


def test_summary_cached_and_invalidated(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    token = mint_token(learner)
    url = f"/v1/enrollments/{enrollment.id}/summary"

    _log(client, token, enrollment, session_duration_minutes=30)
    first = client.get(url, headers=auth(token))
    assert first.status_code == 200
    assert first.json()["total_minutes"] == 30
    assert client.get(url, headers=auth(token)).json() == first.json()

    _log(
        client,
        token,
        enrollment,
        session_start_time="2026-03-10T12:00:00Z",
        session_duration_minutes=15,
    )
    fresh = client.get(url, headers=auth(token)).json()
    assert fresh["total_minutes"] == 45
    assert fresh["record_count"] == 2


def test_summary_not_shared_with_other_learners(client: TestClient) -> None:
    learner, _, enrollment = _setup()
    _log(client, mint_token(learner), enrollment, session_duration_minutes=30)
    url = f"/v1/enrollments/{enrollment.id}/summary"
    client.get(url, headers=auth(mint_token(learner)))

    stranger = seed_learner(memory_store)
    assert client.get(url, headers=auth(mint_token(stranger))).status_code == 403
