"""Tests for request logging middleware."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from subscription_manager.middleware import (
    ContextMiddleware,
    RequestLoggingMiddleware,
    path_context,
)


class TestPathContext:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/subscriptions/sub_1", {"subscription_id": "sub_1"}),
            ("/subscriptions/upgrade/local_1", {"subscription_id": "local_1"}),
            ("/subscriptions/cancel/sub_1", {"subscription_id": "sub_1"}),
            ("/subscriptions", {}),
            ("/plan/sync", {}),
            ("/plan/price_basic", {"plan_id": "price_basic"}),
            ("/users/u1", {"user_id": "u1"}),
            ("/webhook/stripe", {}),
            ("/", {}),
        ],
    )
    def test_extracts_ids(self, path, expected):
        assert path_context(path) == expected


@pytest.fixture
def client():
    app = FastAPI()
    app.add_middleware(ContextMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/subscriptions/{subscription_id}")
    def read(subscription_id: str):
        return {"id": subscription_id}

    return TestClient(app)


class TestRequestLoggingMiddleware:
    def test_generates_request_id(self, client):
        response = client.get("/subscriptions/sub_1")

        assert response.status_code == 200
        assert response.headers["X-Request-ID"]

    def test_reuses_incoming_request_id(self, client):
        response = client.get("/subscriptions/sub_1", headers={"X-Request-ID": "req-abc"})
        assert response.headers["X-Request-ID"] == "req-abc"
