"""Offline notification channels (push / SMS / email)."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

import httpx

from vicinity.core.errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass
class OfflineMessage:
    """One message for one recipient. ``phone`` is set for off-platform contacts."""

    title: str
    body: str
    channels: list[str]
    recipient_user_id: int | None = None
    phone: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class OfflineNotifier:
    """Hands a message to an out-of-band delivery service.

    ``send`` returns once the message is accepted and raises
    NotificationError when it is not.
    """

    def send(self, message: OfflineMessage) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class LoggingNotifier(OfflineNotifier):
    """Used when no gateway is configured. Accepts everything and logs it."""

    def send(self, message: OfflineMessage) -> None:
        logger.info(
            "Offline notification (no gateway): user=%s phone=%s channels=%s title=%r",
            message.recipient_user_id,
            message.phone,
            ",".join(message.channels),
            message.title,
        )


class HttpGatewayNotifier(OfflineNotifier):
    """POSTs messages to a notification gateway (push, SMS and email fan-out)."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = base_url.rstrip("/") + "/messages"
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(headers=headers, timeout=timeout)
        if client is not None and token:
            self._client.headers.update(headers)

    def send(self, message: OfflineMessage) -> None:
        if not message.channels:
            raise NotificationError("No offline channel enabled for recipient")
        try:
            response = self._client.post(self.url, json=asdict(message))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Notification gateway request failed: {exc}") from exc

    def close(self) -> None:
        self._client.close()


def build_notifier(gateway_url: str, token: str = "", timeout: float = 5.0) -> OfflineNotifier:
    if not gateway_url:
        return LoggingNotifier()
    return HttpGatewayNotifier(gateway_url, token=token, timeout=timeout)
