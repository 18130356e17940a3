"""OneSignal push notification transport.

Sends a single POST per alert to the OneSignal REST API. Errors surface as
exceptions; the caller (AlertDispatcher) decides they are not fatal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog

if TYPE_CHECKING:
    from flowguard.core.models import Alert

log = structlog.get_logger()

ALERT_TITLE = "\U0001F6A8 DANGER ALERT"


def build_message(alert: Alert) -> str:
    reading = alert.reading
    text = f"Water flow sensor detected DANGER! Rotations: {reading.r}"
    if reading.la or reading.lo:
        text += f", location: {reading.la:.6f}, {reading.lo:.6f}"
    return text


class OneSignalNotifier:
    """AlertNotifier backed by the OneSignal notifications endpoint."""

    def __init__(
        self,
        app_id: str,
        api_key: str,
        api_url: str = "https://api.onesignal.com/notifications",
        segments: list[str] | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._app_id = app_id
        self._api_key = api_key
        self._api_url = api_url
        self._segments = segments or ["All"]
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def build_payload(self, alert: Alert) -> dict:
        reading = alert.reading
        return {
            "app_id": self._app_id,
            "included_segments": list(self._segments),
            "headings": {"en": ALERT_TITLE},
            "contents": {"en": build_message(alert)},
            "data": {
                "p": reading.p,
                "r": reading.r,
                "la": reading.la,
                "lo": reading.lo,
                "t": alert.timestamp_ms,
            },
        }

    async def send(self, alert: Alert) -> None:
        resp = await self._client.post(
            self._api_url,
            json=self.build_payload(alert),
            headers={"Authorization": f"Basic {self._api_key}"},
        )
        resp.raise_for_status()
        log.info("push_sent", status_code=resp.status_code,
                 timestamp_ms=alert.timestamp_ms)

    async def close(self) -> None:
        await self._client.aclose()
