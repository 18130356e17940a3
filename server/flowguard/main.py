"""FlowGuard server — main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, storage, notifier, and API layers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flowguard.api.monitoring import router as monitoring_router
from flowguard.api.readings import router as readings_router
from flowguard.config import AppConfig, load_config
from flowguard.core.alerts import AlertDispatcher
from flowguard.core.processor import ReadingProcessor
from flowguard.core.stats import ServerStats
from flowguard.notify.log_notifier import LogNotifier
from flowguard.notify.onesignal import OneSignalNotifier
from flowguard.storage.base import StoreUnavailableError
from flowguard.storage.sqlite_storage import SqliteReadingStore

log = structlog.get_logger()

# Module-level singletons (set during startup)
_processor: ReadingProcessor | None = None
_store: SqliteReadingStore | None = None
_dispatcher: AlertDispatcher | None = None
_stats: ServerStats | None = None
_config: AppConfig | None = None

# Read once at import. CORS origins are fixed when the app is built; the
# lifespan reuses this same config.
_boot_config = load_config()


def get_processor() -> ReadingProcessor:
    if _processor is None:
        raise StoreUnavailableError("reading store is not configured")
    return _processor


def get_store() -> SqliteReadingStore:
    if _store is None:
        raise StoreUnavailableError("reading store is not configured")
    return _store


def get_stats() -> ServerStats:
    assert _stats is not None, "Server not initialized"
    return _stats


def get_config() -> AppConfig:
    assert _config is not None, "Server not initialized"
    return _config


def _setup_logging(config: AppConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def _build_notifier(config: AppConfig):
    alerts = config.alerts
    if not alerts.enabled or alerts.provider == "log":
        return LogNotifier()
    if not alerts.app_id or not alerts.api_key:
        log.warning("alerts_missing_credentials", provider=alerts.provider)
        return LogNotifier()
    return OneSignalNotifier(
        app_id=alerts.app_id,
        api_key=alerts.api_key,
        api_url=alerts.api_url,
        segments=alerts.segments,
        timeout_seconds=alerts.timeout_seconds,
    )


def _build_store(config: AppConfig) -> SqliteReadingStore | None:
    if config.storage.backend != "sqlite":
        log.error("storage_backend_unsupported", backend=config.storage.backend)
        return None
    try:
        return SqliteReadingStore(
            config.storage.path,
            max_history_docs=config.telemetry.max_history_docs,
        )
    except StoreUnavailableError:
        log.error("storage_open_failed", path=config.storage.path, exc_info=True)
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global _processor, _store, _dispatcher, _stats, _config

    _config = _boot_config
    _setup_logging(_config)

    log.info("server_starting",
             env=_config.server.env,
             storage_path=_config.storage.path,
             alerts_enabled=_config.alerts.enabled)

    # Create components
    _stats = ServerStats()
    notifier = _build_notifier(_config)
    _dispatcher = AlertDispatcher(notifier, stats=_stats)
    _store = _build_store(_config)
    if _store is not None:
        _processor = ReadingProcessor(
            store=_store,
            dispatcher=_dispatcher,
            stats=_stats,
            telemetry=_config.telemetry,
        )

    log.info("server_started",
             host=_config.server.host,
             port=_config.server.port)

    yield

    # Shutdown
    await _dispatcher.drain()
    await notifier.close()
    if _store is not None:
        await _store.close()
    log.info("server_stopped")


app = FastAPI(
    title="FlowGuard",
    description="Water flow sensor monitoring server",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.server.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    if _stats is not None:
        _stats.record_store_error()
    log.error("store_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"error": "store unavailable", "detail": str(exc)})


app.include_router(readings_router)
app.include_router(monitoring_router)


def run() -> None:
    """Serve the app with uvicorn using host/port from config."""
    import uvicorn

    config = _boot_config
    uvicorn.run("flowguard.main:app", host=config.server.host, port=config.server.port)
