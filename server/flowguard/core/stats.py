"""Server statistics.

In-memory, per-process counters for the monitoring endpoints. They are
observational only; nothing on the ingestion path reads them back.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time


class ServerStats:
    """Thread-safe ingestion and alerting counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()

        # Counters
        self.readings_received: int = 0
        self.readings_rejected: int = 0
        self.bytes_received: int = 0
        self.danger_readings: int = 0
        self.history_appended: int = 0
        self.history_trimmed: int = 0
        self.trim_errors: int = 0
        self.alerts_sent: int = 0
        self.alerts_failed: int = 0
        self.alerts_suppressed: int = 0
        self.store_errors: int = 0

        self.last_reading_ms: int | None = None

    def record_reading(self, size_bytes: int, timestamp_ms: int, *, danger: bool) -> None:
        with self._lock:
            self.readings_received += 1
            self.bytes_received += size_bytes
            if danger:
                self.danger_readings += 1
            self.last_reading_ms = timestamp_ms

    def record_rejected(self, count: int = 1) -> None:
        with self._lock:
            self.readings_rejected += count

    def record_history(self, trimmed: int = 0) -> None:
        with self._lock:
            self.history_appended += 1
            self.history_trimmed += trimmed

    def record_trim_error(self) -> None:
        with self._lock:
            self.trim_errors += 1

    def record_alert_sent(self) -> None:
        with self._lock:
            self.alerts_sent += 1

    def record_alert_failed(self) -> None:
        with self._lock:
            self.alerts_failed += 1

    def record_alert_suppressed(self) -> None:
        with self._lock:
            self.alerts_suppressed += 1

    def record_store_error(self) -> None:
        with self._lock:
            self.store_errors += 1

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "readings_received": self.readings_received,
                "readings_rejected": self.readings_rejected,
                "bytes_received": self.bytes_received,
                "danger_readings": self.danger_readings,
                "last_reading_ms": self.last_reading_ms,
                "history": {
                    "appended": self.history_appended,
                    "trimmed": self.history_trimmed,
                    "trim_errors": self.trim_errors,
                },
                "alerts": {
                    "sent": self.alerts_sent,
                    "failed": self.alerts_failed,
                    "suppressed": self.alerts_suppressed,
                },
                "store_errors": self.store_errors,
            }
