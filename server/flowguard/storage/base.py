"""Storage interface (port) for the latest reading and the history log."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from flowguard.core.models import HistoryEntry, LatestRecord


class StoreError(Exception):
    """Base class for storage failures."""


class StoreUnavailableError(StoreError):
    """The store is missing, misconfigured, or failed to answer."""


class ReadingStore(Protocol):
    """Port: one singleton latest record plus a capped, time-ordered history."""

    async def get_latest(self) -> LatestRecord | None: ...

    async def upsert_latest(
        self,
        record: LatestRecord,
        *,
        claim_alert: bool = False,
        expected_last_alert: int | None = None,
    ) -> bool: ...

    async def append_history(self, entry: HistoryEntry) -> None: ...

    async def latest_history_timestamp(self) -> int | None: ...

    async def query_history(
        self, day: str | None, limit: int, *, descending: bool = True,
    ) -> list[HistoryEntry]: ...

    async def count_history(self) -> int: ...

    async def trim_history_to_capacity(self) -> int: ...

    async def close(self) -> None: ...
