from typing import Any
from unittest.mock import MagicMock

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from api.dependencies import get_app_settings, get_auth_service
from api.middleware.exception_handlers import register_exception_handlers
from api.routes.auth import router
from models.error_models import ErrorCode


@pytest.fixture
def app(settings: Any) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    app.dependency_overrides[get_app_settings] = lambda: settings
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


def test_issue_token(client: TestClient) -> None:
    response = client.post("/token", json={"userId": "jane"})

    assert response.status_code == 200
    payload = jwt.decode(response.json()["token"], "test-stream-secret", algorithms=["HS256"])
    assert payload["user_id"] == "jane"
    assert payload["exp"] - payload["iat"] == 3600


@pytest.mark.parametrize("payload", [{}, {"userId": ""}, None])
def test_issue_token_requires_user_id(client: TestClient, payload: Any) -> None:
    response = client.post("/token", json=payload)

    assert response.status_code == 400
    assert response.json()["error"] == "userId is required"
    assert response.json()["code"] == ErrorCode.VALIDATION_MISSING_FIELD.value


def test_issue_token_failure(app: FastAPI, client: TestClient) -> None:
    auth = MagicMock()
    auth.issue_chat_token.side_effect = ValueError("STREAM_API_SECRET is not configured")
    app.dependency_overrides[get_auth_service] = lambda: auth

    response = client.post("/token", json={"userId": "jane"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to generate token"
    assert response.json()["reason"] == "STREAM_API_SECRET is not configured"
