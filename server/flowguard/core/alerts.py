"""Alert deduplication and fire-and-forget dispatch.

A DANGER reading alerts whenever the cooldown since the last alert has
elapsed, so a sustained hazard is re-notified periodically instead of only on
the SAFE -> DANGER edge. The last alert time always comes from the store.

Delivery runs as a detached asyncio task: the ingestion response never waits
on it and a delivery failure is logged, counted, and dropped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from flowguard.core.models import Status

if TYPE_CHECKING:
    from flowguard.core.models import Alert
    from flowguard.core.stats import ServerStats
    from flowguard.notify.base import AlertNotifier

log = structlog.get_logger()

COOLDOWN_MS = 60_000


@dataclass(frozen=True)
class AlertDecision:
    should_alert: bool
    last_alert: int | None
    began: bool = False  # SAFE -> DANGER edge, for logs only


def decide_alert(
    new_status: Status,
    previous_status: Status | None,
    previous_last_alert: int | None,
    now_ms: int,
    cooldown_ms: int = COOLDOWN_MS,
) -> AlertDecision:
    began = new_status is Status.DANGER and previous_status is not Status.DANGER
    if new_status is not Status.DANGER:
        return AlertDecision(False, previous_last_alert, began)
    if previous_last_alert is not None and now_ms - previous_last_alert <= cooldown_ms:
        return AlertDecision(False, previous_last_alert, began)
    return AlertDecision(True, now_ms, began)


class AlertDispatcher:
    """Schedules alert deliveries without coupling them to the caller."""

    def __init__(self, notifier: AlertNotifier, stats: ServerStats | None = None) -> None:
        self._notifier = notifier
        self._stats = stats
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, alert: Alert) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(alert))
        # Hold a reference so the task is not garbage collected mid-flight.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, alert: Alert) -> None:
        try:
            await self._notifier.send(alert)
        except Exception:
            log.warning("alert_delivery_failed", timestamp_ms=alert.timestamp_ms,
                        exc_info=True)
            if self._stats is not None:
                self._stats.record_alert_failed()
            return
        log.info("alert_delivered", timestamp_ms=alert.timestamp_ms,
                 rotations=alert.reading.r)
        if self._stats is not None:
            self._stats.record_alert_sent()

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
