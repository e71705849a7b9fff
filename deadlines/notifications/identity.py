"""HTTP implementation of the IdentityProvider protocol."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from deadlines.config import settings

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)


def _find_attribute(attributes: Any, name: str) -> str | None:
    """Read an attribute from either ``[{"name", "value"}]`` or a plain mapping."""
    if isinstance(attributes, dict):
        value = attributes.get(name)
        return str(value) if value else None
    if isinstance(attributes, list):
        for attr in attributes:
            if isinstance(attr, dict) and attr.get("name") == name and attr.get("value"):
                return str(attr["value"])
    return None


class HttpIdentityProvider:
    """Looks users up in a user pool: ``GET {base}/pools/{pool}/users/{userId}``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        pool_id: str | None = None,
        token: str | None = None,
    ) -> None:
        self._client = client
        if base_url is None:
            base_url = settings.identity_api_url
        self._base_url = base_url.rstrip("/")
        self._pool_id = settings.user_pool_id if pool_id is None else pool_id
        token = settings.identity_api_token if token is None else token
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._pool_id)

    async def get_user_email(self, user_id: str) -> str | None:
        resp = await self._client.get(
            f"{self._base_url}/pools/{self._pool_id}/users/{user_id}",
            headers=self._headers,
        )
        if resp.status_code == 404:
            logger.warning("User %s not found in pool %s", user_id, self._pool_id)
            return None
        resp.raise_for_status()
        email = _find_attribute(resp.json().get("attributes"), "email")
        if email is None:
            logger.warning("User %s has no email attribute", user_id)
        return email
