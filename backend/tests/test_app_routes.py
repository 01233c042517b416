"""Regression tests for application route registration and request ids."""
import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from app.main import app

TRANSFORMER_ROUTES = [
    ("POST", "/transformers/clarify"),
    ("POST", "/transformers/generate"),
    ("GET", "/transformers"),
    ("GET", "/transformers/{transformer_id}"),
    ("PUT", "/transformers/{transformer_id}"),
    ("POST", "/transformers/{transformer_id}/refine"),
    ("POST", "/transformers/{transformer_id}/apply"),
    ("POST", "/transformers/{transformer_id}/advance-phase"),
    ("GET", "/transformers/{transformer_id}/progress"),
    ("POST", "/transformers/{transformer_id}/archive"),
]


@pytest.mark.parametrize(("method", "path"), TRANSFORMER_ROUTES)
def test_transformer_route_registered_once(method: str, path: str) -> None:
    """Ensure each transformer endpoint is mounted exactly once."""
    matches = [
        route
        for route in app.routes
        if isinstance(route, APIRoute) and route.path == path and method in route.methods
    ]
    assert len(matches) == 1


def test_health_endpoint_returns_ok() -> None:
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers.get("X-Request-Id")


def test_request_id_echoed_from_header() -> None:
    req_id = "test-request-id-123"
    response = TestClient(app).get("/health", headers={"X-Request-Id": req_id})

    assert response.headers.get("X-Request-Id") == req_id
