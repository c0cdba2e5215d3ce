from __future__ import annotations

import importlib

import pytest
from fastapi.testclient import TestClient

from core.settings import get_settings


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SHOP_API_BASE_URL", "https://api.shop.example")
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    get_settings.cache_clear()
    main = importlib.import_module("main")
    yield main.app
    get_settings.cache_clear()


def test_health_route_echoes_request_id(app):
    client = TestClient(app)

    response = client.get("/health", headers={"X-Request-ID": "req-7"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-7"
    assert "X-Process-Time" in response.headers
    payload = response.json()
    assert payload["requestId"] == "req-7"
    assert payload["data"]["status"] == "healthy"


def test_request_validation_errors_use_the_error_envelope(app):
    client = TestClient(app)

    response = client.post("/v1/checkout/phone/validate", json={"country_code": "CM"})

    assert response.status_code == 422
    payload = response.json()
    assert payload["success"] is False
    assert payload["data"]["code"] == "VALIDATION_FAILED"
    assert payload["data"]["details"]["missingFields"] == ["phone"]
