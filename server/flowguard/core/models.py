"""FlowGuard server — core internal data models.

These are plain dataclasses with no framework dependencies.
Wire JSON is converted to/from these at the boundary.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo


class Status(str, enum.Enum):
    SAFE = "SAFE"
    DANGER = "DANGER"

    @classmethod
    def parse(cls, value: object) -> Status:
        """Normalize any stored or wire value. Only "danger" in any casing is DANGER."""
        if isinstance(value, Status):
            return value
        if isinstance(value, str) and value.strip().upper() == "DANGER":
            return cls.DANGER
        return cls.SAFE


@dataclass(frozen=True)
class CompactReading:
    p: int = 0
    r: int = 0
    la: float = 0.0
    lo: float = 0.0


@dataclass(frozen=True)
class HistoryEntry:
    p: int
    r: int
    la: float
    lo: float
    s: Status
    t: int
    d: str


@dataclass(frozen=True)
class LatestRecord:
    p: int
    r: int
    la: float
    lo: float
    s: Status
    t: int
    d: str
    last_alert: int | None = None

    @property
    def reading(self) -> CompactReading:
        return CompactReading(p=self.p, r=self.r, la=self.la, lo=self.lo)

    def to_history(self) -> HistoryEntry:
        return HistoryEntry(p=self.p, r=self.r, la=self.la, lo=self.lo,
                            s=self.s, t=self.t, d=self.d)


@dataclass(frozen=True)
class Alert:
    """An outbound DANGER notification for one triggering reading."""
    reading: CompactReading
    timestamp_ms: int
    day: str


def local_datetime(timestamp_ms: int, tz_name: str) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=ZoneInfo(tz_name))


def local_day(timestamp_ms: int, tz_name: str) -> str:
    """Calendar day (YYYY-MM-DD) of an epoch-millis timestamp in a fixed timezone."""
    return local_datetime(timestamp_ms, tz_name).strftime("%Y-%m-%d")
