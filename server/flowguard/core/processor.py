"""Reading processor — classifies, persists, and alerts on incoming readings.

This is the core business logic. It depends on the ReadingStore protocol and
an AlertDispatcher, not concrete implementations.

Every piece of "previous" state (flow, status, last alert time, last history
save) is read from the store at the start of each call. Nothing is carried in
process memory between requests, because concurrent server processes share
only the store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING

import structlog

from flowguard.core.alerts import decide_alert
from flowguard.core.classifier import classify
from flowguard.core.models import Alert, LatestRecord, Status, local_day
from flowguard.core.normalizer import normalize
from flowguard.storage.base import StoreError

if TYPE_CHECKING:
    from flowguard.config import TelemetryConfig
    from flowguard.core.alerts import AlertDispatcher
    from flowguard.core.stats import ServerStats
    from flowguard.storage.base import ReadingStore

log = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class IngestResult:
    record: LatestRecord
    alerted: bool
    history_saved: bool


class ReadingProcessor:
    """Runs one reading through normalize -> classify -> store -> alert."""

    def __init__(
        self,
        store: ReadingStore,
        dispatcher: AlertDispatcher,
        stats: ServerStats,
        telemetry: TelemetryConfig,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._stats = stats
        self._telemetry = telemetry
        self._clock = clock

    async def ingest(self, raw: dict, size_bytes: int = 0) -> IngestResult:
        cfg = self._telemetry
        reading = normalize(raw)
        now_ms = self._clock()

        previous = await self._store.get_latest()
        previous_flow = previous.r if previous is not None else 0
        previous_status = previous.s if previous is not None else None
        previous_last_alert = previous.last_alert if previous is not None else None

        result = classify(
            reading.r, previous_flow,
            noise_threshold=cfg.noise_threshold,
            safe_threshold=cfg.safe_threshold,
        )
        if "status" in raw and Status.parse(raw["status"]) is not result.status:
            log.debug("device_status_overridden", device_status=raw["status"],
                      status=result.status.value)

        decision = decide_alert(
            result.status, previous_status, previous_last_alert, now_ms,
            cooldown_ms=cfg.cooldown_ms,
        )

        record = LatestRecord(
            p=reading.p,
            r=result.adjusted_flow,
            la=reading.la,
            lo=reading.lo,
            s=result.status,
            t=now_ms,
            d=local_day(now_ms, cfg.timezone),
            last_alert=decision.last_alert,
        )

        claimed = await self._store.upsert_latest(
            record,
            claim_alert=decision.should_alert,
            expected_last_alert=previous_last_alert,
        )
        self._stats.record_reading(size_bytes, now_ms,
                                   danger=result.status is Status.DANGER)

        # A won claim is dispatched before any further store work.
        if decision.should_alert and claimed:
            log.info("danger_alert_dispatched", began=decision.began,
                     rotations=record.r, previous_alert=previous_last_alert)
            self._dispatcher.dispatch(Alert(reading=record.reading,
                                            timestamp_ms=now_ms, day=record.d))
        elif decision.should_alert:
            self._stats.record_alert_suppressed()

        history_saved = await self._maybe_append_history(record)

        log.info("reading_ingested", status=record.s.value, rotations=record.r,
                 raw_rotations=reading.r, history_saved=history_saved)
        return IngestResult(record=record, alerted=decision.should_alert and claimed,
                            history_saved=history_saved)

    async def _maybe_append_history(self, record: LatestRecord) -> bool:
        """Append to history when the newest entry is older than the save interval.

        Only this append is throttled; the latest record is always written.
        """
        last_saved = await self._store.latest_history_timestamp()
        if last_saved is not None and record.t - last_saved <= self._telemetry.save_interval_ms:
            return False

        await self._store.append_history(record.to_history())

        trimmed = 0
        try:
            trimmed = await self._store.trim_history_to_capacity()
        except StoreError:
            # Next append recomputes the overflow.
            log.warning("history_trim_failed", exc_info=True)
            self._stats.record_trim_error()
        self._stats.record_history(trimmed)
        return True
