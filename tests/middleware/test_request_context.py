"""Tests for the request context middleware and log filter."""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from lms.api.dependencies import memory_store
from lms.middleware.request_context import (
    _RequestContextFilter,
    request_id_var,
    user_id_var,
)
from tests.conftest import auth, mint_token, seed_learner


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    resp = client.get("/v1/enrollments")  # No auth token → 401
    assert resp.status_code == 401
    assert resp.headers.get("x-request-id") is not None


def test_filter_stamps_context_vars() -> None:
    record = logging.LogRecord("t", logging.INFO, "t.py", 1, "msg", (), None)
    req_token = request_id_var.set("req-42")
    user_token = user_id_var.set("user-7")
    try:
        _RequestContextFilter().filter(record)
    finally:
        request_id_var.reset(req_token)
        user_id_var.reset(user_token)
    assert record.request_id == "req-42"  # type: ignore[attr-defined]
    assert record.user_id == "user-7"  # type: ignore[attr-defined]


def test_filter_keeps_explicit_extra() -> None:
    record = logging.LogRecord("t", logging.INFO, "t.py", 1, "msg", (), None)
    record.request_id = "explicit"  # type: ignore[attr-defined]
    _RequestContextFilter().filter(record)
    assert record.request_id == "explicit"  # type: ignore[attr-defined]


def test_domain_rejection_is_logged(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO, logger="lms.main")
    learner = seed_learner(memory_store)
    client.get(f"/v1/enrollments/{uuid.uuid4()}", headers=auth(mint_token(learner)))

    messages = [r.getMessage() for r in caplog.records if r.name == "lms.main"]
    assert any("rejected: NotFound" in m for m in messages)
