"""Task mutation stream records."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class EventName(StrEnum):
    INSERT = "INSERT"
    MODIFY = "MODIFY"
    REMOVE = "REMOVE"


@dataclass
class StreamRecord:
    """One task mutation: the item before and after the write.

    Attributes:
        event_name: Raw event name as received. Names other than INSERT and
            MODIFY are kept so consumers can log and skip them.
        new_image: Flattened attributes after the write (empty for REMOVE).
        old_image: Flattened attributes before the write (empty for INSERT).
    """

    event_name: str
    new_image: dict[str, str] = field(default_factory=dict)
    old_image: dict[str, str] = field(default_factory=dict)

    @property
    def task_id(self) -> str:
        return self.new_image.get("taskId") or self.old_image.get("taskId") or "unknown"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> StreamRecord:
        """Parse ``{"eventName", "newImage", "oldImage"}``; missing images read as empty."""
        return cls(
            event_name=str(raw.get("eventName", "")),
            new_image=_flatten(raw.get("newImage")),
            old_image=_flatten(raw.get("oldImage")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventName": self.event_name,
            "newImage": dict(self.new_image),
            "oldImage": dict(self.old_image),
        }


def _flatten(image: Any) -> dict[str, str]:
    if not isinstance(image, Mapping):
        return {}
    return {str(k): str(v) for k, v in image.items() if v is not None and v != ""}


# Listener signature: async (records) -> Any
ChangeListener = Callable[[list[StreamRecord]], Awaitable[Any]]
