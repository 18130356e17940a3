"""Tests for the reading ingestion and query API endpoints."""

from __future__ import annotations

import json
import sqlite3

import pytest

import flowguard.main as main_module
from conftest import START_DAY, START_MS


async def post_reading(client, payload) -> object:
    return await client.post(
        "/api/update",
        content=json.dumps(payload),
        headers={"content-type": "application/json"},
    )


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["history_count"] == 0
    assert data["history_capacity"] == 5000


@pytest.mark.asyncio
async def test_stats_empty(client):
    resp = await client.get("/api/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["readings_received"] == 0
    assert data["alerts"]["sent"] == 0


@pytest.mark.asyncio
async def test_latest_without_data(client):
    resp = await client.get("/api/latest")
    assert resp.status_code == 200
    assert resp.json() == {"status": "NO_DATA"}


@pytest.mark.asyncio
async def test_submit_safe_reading(client):
    resp = await post_reading(client, {"pulses": 160, "rotations": 40, "lat": 19.076, "lon": 72.8777})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["status"] == "SAFE"
    assert data["alerted"] is False
    assert data["history_saved"] is True
    assert data["saved"]["rotations"] == 40
    assert data["saved"]["date"] == START_DAY


@pytest.mark.asyncio
async def test_submit_danger_reading_alerts(client, server, notifier):
    resp = await post_reading(client, {"p": 600, "r": 150, "la": 19.1, "lo": 72.9})
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "DANGER"
    assert data["alerted"] is True

    await server.dispatcher.drain()
    assert len(notifier.sent) == 1
    assert notifier.sent[0].reading.r == 150


@pytest.mark.asyncio
async def test_device_asserted_status_is_ignored(client):
    resp = await post_reading(client, {"rotations": 30, "status": "DANGER"})
    assert resp.json()["status"] == "SAFE"


@pytest.mark.asyncio
async def test_round_trip_latest(client):
    payload = {"pulses": 182, "rotations": 45, "lat": 19.076012, "lon": 72.877655}
    await post_reading(client, payload)

    resp = await client.get("/api/latest")
    data = resp.json()
    for key, value in payload.items():
        assert data[key] == value
    assert data["status"] == "SAFE"
    assert data["timestamp"] == START_MS
    assert data["date"] == START_DAY


@pytest.mark.asyncio
async def test_invalid_json(client, server):
    resp = await client.post(
        "/api/update",
        content=b"pulses=3&rotations=",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400
    data = resp.json()
    assert data["error"] == "Invalid JSON"
    assert data["raw"] == "pulses=3&rotations="
    assert await server.store.get_latest() is None


@pytest.mark.asyncio
async def test_non_object_json_rejected(client, server):
    resp = await client.post("/api/update", content=b"[1, 2, 3]")
    assert resp.status_code == 400
    assert await server.store.get_latest() is None


@pytest.mark.asyncio
async def test_oversized_payload_rejected(client, server):
    payload = {"rotations": 40, "padding": "x" * 600}
    resp = await post_reading(client, payload)
    assert resp.status_code == 413
    assert resp.json()["limit"] == 512
    assert await server.store.get_latest() is None
    assert server.stats.readings_rejected == 1


@pytest.mark.asyncio
async def test_oversized_chunked_payload_rejected(client, server):
    async def chunks():
        yield b'{"rotations": 40, "padding": "'
        for _ in range(10):
            yield b"x" * 100
        yield b'"}'

    resp = await client.post("/api/update", content=chunks())
    assert resp.status_code == 413
    assert await server.store.get_latest() is None
    assert server.stats.readings_rejected == 1


@pytest.mark.asyncio
async def test_huge_counts_are_stored_as_zero(client, server):
    resp = await post_reading(client, {"rotations": 1e20, "pulses": 7})
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "SAFE"
    assert data["saved"]["rotations"] == 0
    assert data["saved"]["pulses"] == 7

    resp = await client.post("/api/update", content=b'{"pulses": 99999999999999999999}')
    assert resp.status_code == 200
    assert resp.json()["saved"]["pulses"] == 0
    assert await server.store.count_history() == 1


@pytest.mark.asyncio
async def test_get_on_update_not_allowed(client):
    resp = await client.get("/api/update")
    assert resp.status_code == 405
    assert resp.json() == {"error": "Only POST allowed"}


@pytest.mark.asyncio
async def test_history_for_day_newest_first(client, clock):
    for rotations in (40, 50, 60):
        await post_reading(client, {"rotations": rotations})
        clock.advance(4_000)

    resp = await client.get("/api/history", params={"date": START_DAY})
    assert resp.status_code == 200
    data = resp.json()
    assert data["date"] == START_DAY
    assert data["count"] == 3
    assert [r["rotations"] for r in data["readings"]] == [60, 50, 40]
    timestamps = [r["timestamp"] for r in data["readings"]]
    assert timestamps == sorted(timestamps, reverse=True)


@pytest.mark.asyncio
async def test_history_other_day_is_empty(client):
    await post_reading(client, {"rotations": 40})
    resp = await client.get("/api/history", params={"date": "2024-12-31"})
    assert resp.status_code == 200
    assert resp.json()["readings"] == []


@pytest.mark.asyncio
async def test_history_rejects_malformed_date(client):
    resp = await client.get("/api/history", params={"date": "02/01/2025"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_export_csv(client, clock):
    for rotations in (40, 50):
        await post_reading(client, {"rotations": rotations, "lat": 19.5, "lon": 72.5})
        clock.advance(4_000)

    resp = await client.get("/api/export", params={"date": START_DAY})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert f'filename="flow_history_{START_DAY}.csv"' in resp.headers["content-disposition"]

    lines = resp.text.strip().splitlines()
    assert lines[0] == '"date","time","timestamp","pulses","rotations","lat","lon","status"'
    assert len(lines) == 3
    # Oldest first, local time in Asia/Kolkata.
    assert lines[1] == f'"{START_DAY}","2025-01-02 01:30:00",{START_MS},0,40,19.5,72.5,"SAFE"'


@pytest.mark.asyncio
async def test_export_all_days_filename(client):
    resp = await client.get("/api/export")
    assert resp.status_code == 200
    assert 'filename="flow_history_all.csv"' in resp.headers["content-disposition"]
    assert len(resp.text.strip().splitlines()) == 1


@pytest.mark.asyncio
async def test_legacy_status_normalized_on_read(client, server):
    conn = sqlite3.connect(server.config.storage.path)
    with conn:
        conn.execute(
            "INSERT INTO latest (id, p, r, la, lo, s, t, d, last_alert) "
            "VALUES ('device', 1, 2, 0, 0, 'normal', ?, ?, NULL)",
            (START_MS, START_DAY),
        )
        conn.executemany(
            "INSERT INTO history (p, r, la, lo, s, t, d) VALUES (0, 0, 0, 0, ?, ?, ?)",
            [("NORMAL", START_MS, START_DAY),
             ("danger", START_MS + 1, START_DAY),
             ("DANGER", START_MS + 2, START_DAY)],
        )
    conn.close()

    latest = (await client.get("/api/latest")).json()
    assert latest["status"] == "SAFE"

    history = (await client.get("/api/history", params={"date": START_DAY})).json()
    assert [r["status"] for r in history["readings"]] == ["DANGER", "DANGER", "SAFE"]

    csv_text = (await client.get("/api/export")).text
    assert "normal" not in csv_text.lower()
    assert csv_text.count('"SAFE"') == 1
    assert csv_text.count('"DANGER"') == 2


@pytest.mark.asyncio
async def test_store_unavailable_is_503(client):
    main_module._store = None
    main_module._processor = None

    resp = await client.get("/api/latest")
    assert resp.status_code == 503
    assert resp.json()["error"] == "store unavailable"

    resp = await post_reading(client, {"rotations": 40})
    assert resp.status_code == 503

    resp = await client.get("/api/history", params={"date": START_DAY})
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_alert_failure_does_not_fail_ingestion(client, server, notifier):
    notifier.fail = True
    resp = await post_reading(client, {"rotations": 200})
    assert resp.status_code == 200
    assert resp.json()["alerted"] is True

    await server.dispatcher.drain()
    assert server.stats.alerts_failed == 1
    assert server.stats.alerts_sent == 0


@pytest.mark.asyncio
async def test_lifespan_reuses_boot_config(tmp_path, monkeypatch):
    monkeypatch.setattr(main_module._boot_config.storage, "path",
                        str(tmp_path / "boot.db"))
    async with main_module.lifespan(main_module.app):
        assert main_module._config is main_module._boot_config
        assert main_module.get_store() is not None
