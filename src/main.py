"""FastAPI application entrypoint for WOFlow."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from src.logging_config import setup_logging_from_env

# Configure logging before anything else
setup_logging_from_env()
logger = logging.getLogger(__name__)

from fastapi import FastAPI, HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from src.api.middleware.rate_limit import setup_rate_limiting
from src.exceptions import WOFlowError
from src.models.errors import INTERNAL_ERROR, error_code_for_status, resolve_domain_error
from src.api.routers import auth, changes, dashboard, routes, work_orders
from src.config import Config
from src.database.connection import Database
from src.gates.completion import CompletionGate, ProductionLogService
from src.gates.release import ReleaseGate
from src.query.record_reader import RecordReader
from src.query.wo_handler import WorkOrderStateHandler
from src.refresh.change_feed import ALL_TABLES, ChangeFeed
from src.refresh.scheduler import OverdueReturnMonitor
from src.routing.route_definition import RouteDefinition


def build_services(config: Config, db: Database) -> dict:
    """Wire the engine components around one database and one change feed."""
    engine = config.engine
    feed = ChangeFeed(debounce_seconds=engine.refresh.debounce_seconds)
    reader = RecordReader(db)
    state_handler = WorkOrderStateHandler(reader, engine)

    # Every change invalidates the computed state of the work orders it names.
    feed.subscribe(ALL_TABLES, lambda table, wo_ids: state_handler.invalidate(set(wo_ids)))

    return {
        "config": config,
        "db": db,
        "reader": reader,
        "change_feed": feed,
        "state_handler": state_handler,
        "route_definition": RouteDefinition(db, reader, change_feed=feed),
        "release_gate": ReleaseGate(db, reader, change_feed=feed),
        "completion_gate": CompletionGate(
            db, reader, resolver=state_handler.resolver, change_feed=feed
        ),
        "production_logs": ProductionLogService(db, reader, change_feed=feed),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = Config.load()
    config.db_path.parent.mkdir(parents=True, exist_ok=True)

    db = Database(config.db_path)
    await db.connect()
    logger.info("Database ready at %s", config.db_path)

    services = build_services(config, db)
    for name, service in services.items():
        setattr(app.state, name, service)

    loop = asyncio.get_running_loop()
    monitor = OverdueReturnMonitor(config.engine.monitor, services["reader"], loop=loop)
    monitor.start()
    app.state.return_monitor = monitor

    yield

    monitor.stop()
    await services["change_feed"].flush()
    services["change_feed"].close()
    await db.close()


app = FastAPI(title="WOFlow", lifespan=lifespan)
setup_rate_limiting(app)

cors_origins = os.getenv("CORS_ALLOWED_ORIGINS", "")
if cors_origins:
    from fastapi.middleware.cors import CORSMiddleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def add_api_version_header(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["X-API-Version"] = "1"
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Enrich all HTTPException responses with a consistent error_code field."""
    error_code = error_code_for_status(exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": error_code},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(WOFlowError)
async def woflow_error_handler(request: Request, exc: WOFlowError):
    status_code, body = resolve_domain_error(exc)
    if status_code == 500:
        logger.error("Application error: %s", exc)
    else:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content=INTERNAL_ERROR.model_dump(),
    )


app.include_router(auth.router)
app.include_router(work_orders.router)
app.include_router(routes.router)
app.include_router(dashboard.router)
app.include_router(changes.router)


@app.get("/health")
async def health():
    return {"status": "healthy"}
