"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(prefix="/api")


@router.get("/health")
async def health() -> dict:
    """Basic health check, including whether the store answers."""
    from flowguard.main import get_config, get_stats, get_store

    config = get_config()
    snapshot = get_stats().snapshot()

    history_count = await get_store().count_history()
    return {
        "status": "ok",
        "version": "0.1.0",
        "uptime_seconds": snapshot["uptime_seconds"],
        "storage_backend": config.storage.backend,
        "history_count": history_count,
        "history_capacity": config.telemetry.max_history_docs,
        "alerts_enabled": config.alerts.enabled,
        "last_reading_ms": snapshot["last_reading_ms"],
    }


@router.get("/stats")
async def stats() -> dict:
    """Ingestion, history, and alert counters for this process."""
    from flowguard.main import get_stats

    return get_stats().snapshot()
