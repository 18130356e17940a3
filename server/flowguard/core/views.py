"""Read-only projections of stored readings into the wire vocabulary.

Stored records use compact keys (p, r, la, lo, s, t, d); clients see
pulses, rotations, lat, lon, status, timestamp, date. Status is normalized on
every projection so legacy values such as "NORMAL" never reach a client.
"""

from __future__ import annotations

import csv
import io
from typing import Iterable, TYPE_CHECKING

from flowguard.core.models import Status, local_datetime

if TYPE_CHECKING:
    from flowguard.core.models import HistoryEntry, LatestRecord

NO_DATA = {"status": "NO_DATA"}

CSV_COLUMNS = ["date", "time", "timestamp", "pulses", "rotations", "lat", "lon", "status"]


def to_wire(record: LatestRecord | HistoryEntry) -> dict:
    return {
        "pulses": record.p,
        "rotations": record.r,
        "lat": record.la,
        "lon": record.lo,
        "status": Status.parse(record.s).value,
        "timestamp": record.t,
        "date": record.d,
    }


def render_csv(entries: Iterable[HistoryEntry], tz_name: str) -> str:
    """Render history entries as CSV with a local human-readable time column."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\r\n")
    writer.writerow(CSV_COLUMNS)
    for entry in entries:
        local = local_datetime(entry.t, tz_name)
        writer.writerow([
            entry.d,
            local.strftime("%Y-%m-%d %H:%M:%S"),
            entry.t,
            entry.p,
            entry.r,
            entry.la,
            entry.lo,
            Status.parse(entry.s).value,
        ])
    return buf.getvalue()


def export_filename(day: str | None) -> str:
    return f"flow_history_{day or 'all'}.csv"
