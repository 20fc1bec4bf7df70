"""Shared fixtures for API endpoint tests."""

import asyncio

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException

from src.api.middleware.rate_limit import limiter, setup_rate_limiting
from src.api.routers import auth, changes, dashboard, routes, work_orders
from src.exceptions import WOFlowError


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to avoid 429s."""
    limiter.reset()
    yield
    limiter.reset()


@pytest_asyncio.fixture
async def api_app(test_config, test_database):
    """All engine routers over a real SQLite file, services on app.state."""
    from src.main import build_services, http_exception_handler, woflow_error_handler
    from src.refresh.scheduler import OverdueReturnMonitor

    app = FastAPI()
    setup_rate_limiting(app)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(WOFlowError, woflow_error_handler)
    for module in (auth, work_orders, routes, dashboard, changes):
        app.include_router(module.router)

    services = build_services(test_config, test_database)
    for name, service in services.items():
        setattr(app.state, name, service)
    app.state.return_monitor = OverdueReturnMonitor(
        test_config.engine.monitor, services["reader"], asyncio.get_running_loop()
    )
    yield app
    services["change_feed"].close()


@pytest_asyncio.fixture
async def client(api_app):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=api_app),
        base_url="http://test",
    ) as http_client:
        yield http_client
