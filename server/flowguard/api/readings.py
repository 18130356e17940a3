"""Reading ingestion and query API endpoints.

This is the thin FastAPI adapter. It frames and parses HTTP requests, calls
the processor or the store, and projects results into the wire vocabulary.
"""

from __future__ import annotations

import json
import time

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, Response

from flowguard.core.models import local_day
from flowguard.core.views import NO_DATA, export_filename, render_csv, to_wire

router = APIRouter(prefix="/api")

_DAY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


async def _read_limited(request: Request, limit: int) -> bytes | None:
    """Read the body, or return None as soon as it is known to exceed ``limit``.

    A declared Content-Length is checked before reading; chunked bodies are
    cut off once the running size passes the limit.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > limit:
        return None

    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/update")
async def receive_reading(request: Request) -> JSONResponse:
    """Receive one reading from the sensor device.

    The body is read raw and size-checked before parsing; the device sends a
    small JSON object with pulses/rotations/lat/lon (or p/r/la/lo).
    """
    from flowguard.main import get_config, get_processor, get_stats

    config = get_config()
    stats = get_stats()
    processor = get_processor()

    body_bytes = await _read_limited(request, config.limits.max_body_bytes)
    if body_bytes is None:
        stats.record_rejected()
        return JSONResponse(
            status_code=413,
            content={"error": "Payload too large", "limit": config.limits.max_body_bytes},
        )

    raw_text = body_bytes.decode("utf-8", errors="replace")
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        stats.record_rejected()
        return JSONResponse(status_code=400, content={"error": "Invalid JSON", "raw": raw_text})

    if not isinstance(body, dict):
        stats.record_rejected()
        return JSONResponse(status_code=400, content={"error": "Invalid JSON", "raw": raw_text})

    result = await processor.ingest(body, len(body_bytes))
    return JSONResponse(content={
        "success": True,
        "status": result.record.s.value,
        "alerted": result.alerted,
        "history_saved": result.history_saved,
        "saved": to_wire(result.record),
    })


@router.api_route("/update", methods=["GET", "PUT", "PATCH", "DELETE"])
async def reject_non_post() -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": "Only POST allowed"},
                        headers={"Allow": "POST"})


@router.get("/latest")
async def get_latest() -> JSONResponse:
    """Return the most recent reading, or a NO_DATA sentinel."""
    from flowguard.main import get_store

    record = await get_store().get_latest()
    if record is None:
        return JSONResponse(content=NO_DATA)
    return JSONResponse(content=to_wire(record))


@router.get("/history")
async def get_history(
    date: str | None = Query(default=None, pattern=_DAY_PATTERN),
) -> JSONResponse:
    """Return one day's history, newest first. Defaults to today (local)."""
    from flowguard.main import get_config, get_store

    config = get_config()
    if date is None:
        date = local_day(int(time.time() * 1000), config.telemetry.timezone)

    entries = await get_store().query_history(
        date, config.limits.history_page_size, descending=True,
    )
    readings = [to_wire(e) for e in entries]
    return JSONResponse(content={"date": date, "count": len(readings), "readings": readings})


@router.get("/export")
async def export_history(
    date: str | None = Query(default=None, pattern=_DAY_PATTERN),
) -> Response:
    """Export history as CSV, oldest first. Without ``date`` all days are exported."""
    from flowguard.main import get_config, get_store

    config = get_config()
    entries = await get_store().query_history(
        date, config.limits.export_page_size, descending=False,
    )
    return Response(
        content=render_csv(entries, config.telemetry.timezone),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(date)}"'},
    )
