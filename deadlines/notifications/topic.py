"""HTTP implementation of the NotificationTopic protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from deadlines.config import settings

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)


class HttpNotificationTopic:
    """Talks to a topic service over HTTP.

    ``POST {base}/topics/{topic}/subscriptions`` and
    ``POST {base}/topics/{topic}/messages``. Non-2xx responses raise
    ``httpx.HTTPStatusError``; timeouts come from the shared client.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        token: str | None = None,
    ) -> None:
        self._client = client
        if base_url is None:
            base_url = settings.notification_api_url
        self._base_url = base_url.rstrip("/")
        token = settings.notification_api_token if token is None else token
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    @property
    def configured(self) -> bool:
        return bool(self._base_url)

    async def subscribe(self, topic: str, endpoint: str, *, protocol: str = "email") -> str:
        resp = await self._client.post(
            f"{self._base_url}/topics/{topic}/subscriptions",
            json={"protocol": protocol, "endpoint": endpoint},
            headers=self._headers,
        )
        resp.raise_for_status()
        subscription_id = str(resp.json().get("subscriptionId", ""))
        logger.debug("Subscribed %s to %s (%s)", endpoint, topic, subscription_id)
        return subscription_id

    async def publish(
        self,
        topic: str,
        subject: str,
        message: str,
        *,
        attributes: dict[str, str] | None = None,
    ) -> str:
        body = {
            "subject": subject,
            "message": message,
            "attributes": {
                key: {"dataType": "String", "stringValue": value}
                for key, value in (attributes or {}).items()
            },
        }
        resp = await self._client.post(
            f"{self._base_url}/topics/{topic}/messages",
            json=body,
            headers=self._headers,
        )
        resp.raise_for_status()
        message_id = str(resp.json().get("messageId", ""))
        logger.debug("Published '%s' to %s (%s)", subject, topic, message_id)
        return message_id
