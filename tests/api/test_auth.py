"""Bearer token verification on protected endpoints."""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from lms.api.dependencies import memory_store
from lms.services import token_service
from tests.conftest import auth, mint_token, seed_learner


def test_missing_token_is_401(client: TestClient) -> None:
    resp = client.get("/v1/enrollments")
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_valid_token_is_accepted(client: TestClient) -> None:
    learner = seed_learner(memory_store)
    resp = client.get("/v1/enrollments", headers=auth(mint_token(learner)))
    assert resp.status_code == 200
    assert resp.json() == []


def test_expired_token_is_401(client: TestClient) -> None:
    token = token_service.create_access_token(
        sub=str(uuid4()), role="learner", ttl=timedelta(seconds=-30)
    )
    resp = client.get("/v1/enrollments", headers=auth(token))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"


def test_garbage_token_is_401(client: TestClient) -> None:
    resp = client.get("/v1/enrollments", headers=auth("not.a.jwt"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


@pytest.mark.parametrize(
    ("sub", "role"),
    [
        ("42", "learner"),
        (str(uuid4()), "instructor"),
    ],
)
def test_bad_claims_are_401(client: TestClient, sub: str, role: str) -> None:
    token = token_service.create_access_token(sub=sub, role=role)
    resp = client.get("/v1/enrollments", headers=auth(token))
    assert resp.status_code == 401


def test_wrong_audience_is_401(client: TestClient) -> None:
    claims = {
        "sub": str(uuid4()),
        "role": "learner",
        "iss": "identity-provider",
        "aud": "other-service",
        "exp": 9999999999,
        "iat": 0,
    }
    token = jwt.encode(
        claims,
        token_service._private_key,
        algorithm=token_service.ALGORITHM,
    )
    resp = client.get("/v1/enrollments", headers=auth(token))
    assert resp.status_code == 401
