"""API tests."""

import base64
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from vis_render.config import Settings
from vis_render.main import create_app

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
DATA_URI_PREFIX = "data:image/png;base64,"


@pytest.fixture
def client() -> TestClient:
    """Create test client for an inline-mode app backed by matplotlib."""
    return TestClient(create_app(Settings(_env_file=None, image_mode="base64")))


def test_health(client: TestClient) -> None:
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert isinstance(data["uptime"], float)
    assert data["timestamp"].endswith("Z")
    datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))


def test_health_uptime_never_decreases(client: TestClient) -> None:
    uptimes = [client.get("/health").json()["uptime"] for _ in range(5)]
    assert uptimes == sorted(uptimes)
    assert uptimes[0] >= 0


def test_render_line_chart_inline(client: TestClient) -> None:
    """The documented line chart request returns an inline PNG."""
    response = client.post(
        "/render",
        json={"type": "line", "data": [{"time": "2020", "value": 1}]},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert "errorMessage" not in data
    assert data["resultObj"].startswith(DATA_URI_PREFIX)
    png = base64.b64decode(data["resultObj"][len(DATA_URI_PREFIX) :])
    assert png.startswith(PNG_SIGNATURE)


def test_render_missing_type_is_rejected(client: TestClient) -> None:
    response = client.post("/render", json={"data": [{"time": "2020", "value": 1}]})
    assert response.status_code == 400
    assert response.json() == {"success": False, "errorMessage": "Missing required parameter: type"}


def test_render_unknown_chart_type_is_a_server_failure(client: TestClient) -> None:
    response = client.post("/render", json={"type": "hologram", "data": []})
    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert "Unsupported chart type" in data["errorMessage"]


@pytest.mark.parametrize(
    ("method", "path"),
    [
        ("GET", "/"),
        ("GET", "/does-not-exist"),
        ("GET", "/render"),
        ("POST", "/health"),
        ("DELETE", "/render"),
        ("GET", "/images/whatever.png"),
    ],
)
def test_unknown_routes_use_not_found_body(client: TestClient, method: str, path: str) -> None:
    response = client.request(method, path)
    assert response.status_code == 404
    assert response.json() == {"success": False, "errorMessage": "Not found"}


def test_cors_allows_any_origin_by_default(client: TestClient) -> None:
    response = client.get("/health", headers={"Origin": "https://example.com"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_oversized_body_is_rejected() -> None:
    client = TestClient(create_app(Settings(_env_file=None, body_limit_bytes=64)))
    response = client.post("/render", json={"type": "line", "data": [{"time": str(i), "value": i} for i in range(50)]})
    assert response.status_code == 413
    assert response.json() == {"success": False, "errorMessage": "Request body too large"}


def test_streamed_body_over_limit_is_rejected_without_rendering() -> None:
    class CountingEngine:
        calls = 0

        def render(self, options):  # type: ignore[no-untyped-def]
            CountingEngine.calls += 1
            raise AssertionError("engine must not be reached")

    client = TestClient(create_app(Settings(_env_file=None, body_limit_bytes=64), engine=CountingEngine()))
    payload = b'{"type": "line", "data": [' + b",".join(b'{"time": "1", "value": 1}' for _ in range(40)) + b"]}"

    def chunks():  # type: ignore[no-untyped-def]
        for start in range(0, len(payload), 100):
            yield payload[start : start + 100]

    response = client.post("/render", content=chunks(), headers={"Content-Type": "application/json"})

    assert response.status_code == 413
    assert response.json() == {"success": False, "errorMessage": "Request body too large"}
    assert CountingEngine.calls == 0


def test_deeply_nested_json_is_invalid_json(client: TestClient) -> None:
    body = '{"type": "line", "data": ' + "[" * 100_000 + "]" * 100_000 + "}"
    response = client.post("/render", content=body, headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "errorMessage": "Invalid JSON body"}
