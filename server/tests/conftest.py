"""Shared test fixtures."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

import flowguard.main as main_module
from flowguard.config import AppConfig
from flowguard.core.alerts import AlertDispatcher
from flowguard.core.processor import ReadingProcessor
from flowguard.core.stats import ServerStats
from flowguard.storage.sqlite_storage import SqliteReadingStore

# 2025-01-01T20:00:00Z, which is 2025-01-02 01:30 in Asia/Kolkata.
START_MS = 1_735_761_600_000
START_DAY = "2025-01-02"


class FakeClock:
    """Controllable epoch-millis clock for the processor."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


class RecordingNotifier:
    """In-memory AlertNotifier; set ``fail`` to make every send raise."""

    def __init__(self) -> None:
        self.sent = []
        self.fail = False

    async def send(self, alert) -> None:
        if self.fail:
            raise RuntimeError("push provider unreachable")
        self.sent.append(alert)

    async def close(self) -> None:
        return None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def server(tmp_path, clock, notifier):
    """Initialize server singletons for every test, using a temp database."""
    config = AppConfig()
    config.storage.path = str(tmp_path / "flowguard.db")
    config.logging.level = "warning"

    stats = ServerStats()
    store = SqliteReadingStore(config.storage.path,
                               max_history_docs=config.telemetry.max_history_docs)
    dispatcher = AlertDispatcher(notifier, stats=stats)
    processor = ReadingProcessor(store=store, dispatcher=dispatcher, stats=stats,
                                 telemetry=config.telemetry, clock=clock)

    # Patch module-level singletons
    main_module._config = config
    main_module._stats = stats
    main_module._store = store
    main_module._dispatcher = dispatcher
    main_module._processor = processor

    yield SimpleNamespace(config=config, stats=stats, store=store,
                          dispatcher=dispatcher, processor=processor)

    # Cleanup
    main_module._config = None
    main_module._stats = None
    main_module._store = None
    main_module._dispatcher = None
    main_module._processor = None


@pytest.fixture
async def client():
    from flowguard.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
