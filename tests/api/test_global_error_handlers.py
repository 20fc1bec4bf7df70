"""Tests for exception handlers, health and version header defined in main.py."""

import httpx
import pytest

from src.exceptions import (
    DatabaseError,
    GateValidationError,
    ProductionLockedError,
    RecordNotFoundError,
    RouteSequenceError,
    WOFlowError,
)
from src.main import app


@pytest.fixture(scope="module", autouse=True)
def _error_routes():
    """Routes raising domain errors straight through to the app handlers."""

    errors = {
        "locked": ProductionLockedError("Logging locked"),
        "sequence": RouteSequenceError("Route changed concurrently"),
        "gate": GateValidationError("First-piece QC is not passed"),
        "missing": RecordNotFoundError("WO-9 not found"),
        "store": DatabaseError("disk I/O error"),
        "base": WOFlowError("unclassified"),
        "runtime": RuntimeError("boom"),
    }

    @app.get("/test/raise/{name}")
    async def raise_error(name: str):
        raise errors[name]

    yield
    app.router.routes = [r for r in app.router.routes if getattr(r, "path", "") != "/test/raise/{name}"]


async def _get(path: str) -> httpx.Response:
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path)


class TestDomainErrorHandler:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "name,status,code",
        [
            ("locked", 409, "production_locked"),
            ("sequence", 409, "sequence_conflict"),
            ("gate", 400, "gate_validation"),
            ("missing", 404, "not_found"),
            ("store", 503, "service_unavailable"),
        ],
    )
    async def test_mapped_errors(self, name, status, code):
        response = await _get(f"/test/raise/{name}")
        assert response.status_code == status
        assert response.json()["error_code"] == code

    @pytest.mark.asyncio
    async def test_unmapped_domain_error_hides_detail(self):
        response = await _get("/test/raise/base")
        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error", "error_code": "internal_error"}

    @pytest.mark.asyncio
    async def test_unhandled_exception(self):
        response = await _get("/test/raise/runtime")
        assert response.status_code == 500
        assert "boom" not in response.text


class TestHealthAndVersion:
    @pytest.mark.asyncio
    async def test_health(self):
        response = await _get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "X-API-Version" not in response.headers

    @pytest.mark.asyncio
    async def test_api_paths_carry_version_header(self):
        response = await _get("/api/auth/verify")
        assert response.status_code == 401
        assert response.json()["error_code"] == "unauthorized"
        assert response.headers["X-API-Version"] == "1"
