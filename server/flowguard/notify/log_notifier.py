"""Notifier that only logs. Used when push alerts are disabled."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from flowguard.core.models import Alert

log = structlog.get_logger()


class LogNotifier:
    async def send(self, alert: Alert) -> None:
        log.warning("danger_alert", rotations=alert.reading.r,
                    lat=alert.reading.la, lon=alert.reading.lo,
                    timestamp_ms=alert.timestamp_ms)

    async def close(self) -> None:
        return None
