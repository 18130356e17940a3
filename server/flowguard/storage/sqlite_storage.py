"""SQLite-backed storage implementation.

Two tables:
- ``latest``: a single row keyed by LATEST_KEY, overwritten on every reading
- ``history``: append-only log ordered by ``t`` and partitioned by local day
  ``d``, trimmed back to ``max_history_docs`` after each append

The database file is the only state shared between requests and between
server processes, so every write that depends on prior state runs inside a
``BEGIN IMMEDIATE`` transaction.
"""

from __future__ import annotations

import contextlib
import sqlite3
import threading
from pathlib import Path

import structlog

from flowguard.core.models import HistoryEntry, LatestRecord, Status
from flowguard.storage.base import StoreUnavailableError

log = structlog.get_logger()

LATEST_KEY = "device"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS latest (
        id TEXT PRIMARY KEY,
        p INTEGER NOT NULL,
        r INTEGER NOT NULL,
        la REAL NOT NULL,
        lo REAL NOT NULL,
        s TEXT NOT NULL,
        t INTEGER NOT NULL,
        d TEXT NOT NULL,
        last_alert INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        p INTEGER NOT NULL,
        r INTEGER NOT NULL,
        la REAL NOT NULL,
        lo REAL NOT NULL,
        s TEXT NOT NULL,
        t INTEGER NOT NULL,
        d TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_history_t ON history (t, id)",
    "CREATE INDEX IF NOT EXISTS idx_history_d_t ON history (d, t)",
)


def _row_to_history(row: sqlite3.Row) -> HistoryEntry:
    return HistoryEntry(
        p=row["p"], r=row["r"], la=row["la"], lo=row["lo"],
        s=Status.parse(row["s"]), t=row["t"], d=row["d"],
    )


class SqliteReadingStore:
    """ReadingStore backed by a single SQLite database file."""

    def __init__(self, path: str | Path, max_history_docs: int = 5_000) -> None:
        self._path = str(path)
        self._max_history_docs = max_history_docs
        self._lock = threading.Lock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self._path, check_same_thread=False, isolation_level=None,
            )
            self._conn.row_factory = sqlite3.Row
            for statement in _SCHEMA:
                self._conn.execute(statement)
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailableError(f"cannot open store at {self._path}: {exc}") from exc

    @property
    def max_history_docs(self) -> int:
        return self._max_history_docs

    def _fail(self, operation: str, exc: Exception) -> StoreUnavailableError:
        with contextlib.suppress(sqlite3.Error):
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        log.error("store_operation_failed", operation=operation, error=str(exc))
        return StoreUnavailableError(f"{operation} failed: {exc}")

    async def get_latest(self) -> LatestRecord | None:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT * FROM latest WHERE id = ?", (LATEST_KEY,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise self._fail("get_latest", exc) from exc
        if row is None:
            return None
        return LatestRecord(
            p=row["p"], r=row["r"], la=row["la"], lo=row["lo"],
            s=Status.parse(row["s"]), t=row["t"], d=row["d"],
            last_alert=row["last_alert"],
        )

    async def upsert_latest(
        self,
        record: LatestRecord,
        *,
        claim_alert: bool = False,
        expected_last_alert: int | None = None,
    ) -> bool:
        """Overwrite the latest record; optionally claim the alert slot.

        Without ``claim_alert`` the stored ``last_alert`` is preserved. With it,
        ``record.last_alert`` is written only if the stored value still equals
        ``expected_last_alert``. Returns whether the claim was won.
        """
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                row = self._conn.execute(
                    "SELECT last_alert FROM latest WHERE id = ?", (LATEST_KEY,),
                ).fetchone()
                stored_last_alert = row["last_alert"] if row is not None else None

                claimed = claim_alert and stored_last_alert == expected_last_alert
                last_alert = record.last_alert if claimed else stored_last_alert

                self._conn.execute(
                    """
                    INSERT INTO latest (id, p, r, la, lo, s, t, d, last_alert)
                    VALUES (:id, :p, :r, :la, :lo, :s, :t, :d, :last_alert)
                    ON CONFLICT(id) DO UPDATE SET
                        p = excluded.p, r = excluded.r,
                        la = excluded.la, lo = excluded.lo,
                        s = excluded.s, t = excluded.t, d = excluded.d,
                        last_alert = excluded.last_alert
                    """,
                    {
                        "id": LATEST_KEY, "p": record.p, "r": record.r,
                        "la": record.la, "lo": record.lo, "s": record.s.value,
                        "t": record.t, "d": record.d, "last_alert": last_alert,
                    },
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise self._fail("upsert_latest", exc) from exc

        if claim_alert and not claimed:
            log.info("alert_claim_lost", expected=expected_last_alert,
                     stored=stored_last_alert)
        return claimed

    async def append_history(self, entry: HistoryEntry) -> None:
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO history (p, r, la, lo, s, t, d)
                    VALUES (:p, :r, :la, :lo, :s, :t, :d)
                    """,
                    {
                        "p": entry.p, "r": entry.r, "la": entry.la, "lo": entry.lo,
                        "s": entry.s.value, "t": entry.t, "d": entry.d,
                    },
                )
            except sqlite3.Error as exc:
                raise self._fail("append_history", exc) from exc
        log.debug("history_appended", t=entry.t, day=entry.d)

    async def latest_history_timestamp(self) -> int | None:
        with self._lock:
            try:
                row = self._conn.execute("SELECT MAX(t) AS t FROM history").fetchone()
            except sqlite3.Error as exc:
                raise self._fail("latest_history_timestamp", exc) from exc
        return row["t"]

    async def query_history(
        self, day: str | None, limit: int, *, descending: bool = True,
    ) -> list[HistoryEntry]:
        order = "DESC" if descending else "ASC"
        if day is None:
            sql = f"SELECT * FROM history ORDER BY t {order}, id {order} LIMIT ?"
            params: tuple = (limit,)
        else:
            sql = f"SELECT * FROM history WHERE d = ? ORDER BY t {order}, id {order} LIMIT ?"
            params = (day, limit)
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise self._fail("query_history", exc) from exc
        return [_row_to_history(row) for row in rows]

    async def count_history(self) -> int:
        with self._lock:
            try:
                row = self._conn.execute("SELECT COUNT(*) AS n FROM history").fetchone()
            except sqlite3.Error as exc:
                raise self._fail("count_history", exc) from exc
        return row["n"]

    async def trim_history_to_capacity(self) -> int:
        """Delete the oldest rows beyond max_history_docs. Returns rows deleted.

        The overflow is recomputed from the current count on every call, so a
        previously skipped or failed trim is caught up in one pass.
        """
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
                count = self._conn.execute("SELECT COUNT(*) AS n FROM history").fetchone()["n"]
                overflow = count - self._max_history_docs
                deleted = 0
                if overflow > 0:
                    cur = self._conn.execute(
                        """
                        DELETE FROM history WHERE id IN (
                            SELECT id FROM history ORDER BY t ASC, id ASC LIMIT ?
                        )
                        """,
                        (overflow,),
                    )
                    deleted = cur.rowcount
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                raise self._fail("trim_history", exc) from exc

        if deleted:
            log.info("history_trimmed", deleted=deleted, cap=self._max_history_docs)
        return deleted

    async def close(self) -> None:
        with self._lock:
            self._conn.close()
