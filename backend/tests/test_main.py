# tests/test_main.py — App-level middleware and error rendering
import pytest
from httpx import AsyncClient

from tests.conftest import panel


@pytest.mark.asyncio
class TestApp:
    async def test_health(self, client: AsyncClient):
        res = await client.get("/health")
        assert res.status_code == 200
        assert res.json()["panel_version"] == 2
        assert res.json()["cdn_scopes"] == ["ibl@main"]
        assert res.json()["pending_chunks"] == 0

    async def test_request_id_echoed(self, client: AsyncClient):
        res = await client.post("/", json={"query": "Hello", "version": 2}, headers={"X-Request-ID": "req-123"})
        assert res.headers["X-Request-ID"] == "req-123"
        assert res.headers["X-Content-Type-Options"] == "nosniff"
        assert res.headers["Cache-Control"] == "no-store"

    async def test_error_carries_request_id(self, client: AsyncClient):
        res = await client.post("/", json={"query": "Hello", "version": 9}, headers={"X-Request-ID": "req-456"})
        assert res.status_code == 400
        assert res.json() == {"detail": "Invalid version", "request_id": "req-456"}

    async def test_validation_error_shape(self, client: AsyncClient):
        res = await panel(client, "Hello")
        assert res.status_code == 422
        assert isinstance(res.json()["detail"], list)
