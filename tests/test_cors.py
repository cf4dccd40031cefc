from typing import Iterator, List

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.middleware.base import BaseHTTPMiddleware

from web.middleware.cors import CORS_HEADERS, cors_gate_middleware


@pytest.fixture()
def cors_client() -> Iterator[tuple[TestClient, List[str]]]:
    calls: List[str] = []
    app = FastAPI()
    app.add_middleware(BaseHTTPMiddleware, dispatch=cors_gate_middleware)

    @app.api_route("/api/v1/register", methods=["POST", "OPTIONS"])
    def register():
        calls.append("register")
        return {"ok": True}

    client = TestClient(app)
    try:
        yield client, calls
    finally:
        client.close()


def test_preflight_short_circuits(cors_client):
    client, calls = cors_client

    response = client.options("/api/v1/register")

    assert response.status_code == 200
    for name, value in CORS_HEADERS.items():
        assert response.headers[name] == value
    assert calls == []


def test_regular_response_carries_cors_headers(cors_client):
    client, calls = cors_client

    response = client.post("/api/v1/register")

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-expose-headers"] == "*"
    assert calls == ["register"]
