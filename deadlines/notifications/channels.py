"""Protocols for the notification topic and identity provider collaborators."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class NotificationTopic(Protocol):
    """Publish/subscribe notification service.

    Implementations raise on failure; callers decide how to isolate errors.
    """

    async def subscribe(self, topic: str, endpoint: str, *, protocol: str = "email") -> str:
        """Subscribe an endpoint to a topic. Idempotent. Returns the subscription id."""
        ...

    async def publish(
        self,
        topic: str,
        subject: str,
        message: str,
        *,
        attributes: dict[str, str] | None = None,
    ) -> str:
        """Publish a plain text message with filterable string attributes.

        Returns the message id.
        """
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    """User directory that resolves owner ids to contact addresses."""

    async def get_user_email(self, user_id: str) -> str | None:
        """Return the user's email, or None when the user or attribute is missing."""
        ...
