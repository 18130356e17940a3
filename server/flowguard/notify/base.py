"""Notifier interface (port) for outbound DANGER alerts."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from flowguard.core.models import Alert


class AlertNotifier(Protocol):
    """Port: delivers one alert to a push provider. May raise on failure."""

    async def send(self, alert: Alert) -> None: ...

    async def close(self) -> None: ...
