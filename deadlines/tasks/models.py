"""Task data model and status state machine."""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from deadlines.scheduling.timing import format_timestamp, parse_timestamp


class TaskStatus(StrEnum):
    OPEN = "OPEN"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"

    @classmethod
    def parse(cls, value: str | None) -> TaskStatus:
        """Parse a stored status case-insensitively. Unknown values read as OPEN."""
        if value:
            try:
                return cls(str(value).strip().upper())
            except ValueError:
                pass
        return cls.OPEN


# The "still live" marker used when deciding whether a task needs a reminder.
ACTIVE_STATUS = TaskStatus.OPEN

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CLOSED, TaskStatus.EXPIRED})


class CompletedAtError(ValueError):
    """Raised when completed_at is assigned while the task is not COMPLETED."""


# Attribute name on the wire -> dataclass field
_WIRE_FIELDS = {
    "taskId": "task_id",
    "name": "name",
    "description": "description",
    "status": "status",
    "deadline": "deadline",
    "userId": "user_id",
    "createdAt": "created_at",
    "completedAt": "completed_at",
    "expiredAt": "expired_at",
    "responsibility": "responsibility",
    "userComment": "user_comment",
}
_TIMESTAMP_FIELDS = {"deadline", "created_at", "completed_at", "expired_at"}


@dataclass
class Task:
    """A task with a deadline and an owner.

    Attributes:
        task_id: Unique identifier, immutable once assigned.
        name: Human-readable title.
        deadline: Timezone-aware deadline instant. ``None`` only when the
            stored value could not be parsed.
        user_id: Owner (assignee) id in the identity provider.
        description: Free text.
        status: Current lifecycle status.
        created_at: Creation instant.
        completed_at: Completion instant; only settable while COMPLETED.
        expired_at: Set when the task transitions to EXPIRED.
        responsibility: Optional role label carried through from the client.
        user_comment: Comment left by the owner on completion.
    """

    task_id: str
    name: str
    deadline: datetime | None
    user_id: str
    description: str = ""
    status: TaskStatus = TaskStatus.OPEN
    created_at: datetime | None = None
    completed_at: datetime | None = None
    expired_at: datetime | None = None
    responsibility: str = ""
    user_comment: str = ""

    def __setattr__(self, name: str, value: Any) -> None:
        if (
            name == "completed_at"
            and value is not None
            and getattr(self, "status", None) != TaskStatus.COMPLETED
        ):
            msg = f"Cannot set completed_at on task {self.task_id!r} unless status is COMPLETED"
            raise CompletedAtError(msg)
        super().__setattr__(name, value)

    def __post_init__(self) -> None:
        if not isinstance(self.status, TaskStatus):
            self.status = TaskStatus.parse(self.status)

    # -- State ---------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    def mark_expired(self, now: datetime) -> None:
        self.status = TaskStatus.EXPIRED
        self.expired_at = now

    def mark_completed(self, now: datetime) -> None:
        self.status = TaskStatus.COMPLETED
        self.completed_at = now

    def mark_closed(self) -> None:
        self.status = TaskStatus.CLOSED

    # -- Serialization -------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Wire representation with camelCase keys; timestamps as local ISO strings."""
        data: dict[str, Any] = {}
        for wire, attr in _WIRE_FIELDS.items():
            value = getattr(self, attr)
            if attr in _TIMESTAMP_FIELDS:
                value = format_timestamp(value)
            elif attr == "status":
                value = str(value)
            data[wire] = value
        return data

    def to_image(self) -> dict[str, str]:
        """Flattened string map of the non-empty attributes."""
        return {key: str(value) for key, value in self.to_dict().items() if value}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_image(cls, image: Mapping[str, Any]) -> Task:
        """Build a Task from a string-keyed attribute map.

        Unknown keys are ignored. ``assigneeId`` is accepted when ``userId``
        is absent. Raises ValueError when ``taskId`` is missing.
        """
        task_id = image.get("taskId")
        if not task_id:
            msg = "taskId missing in task attributes"
            raise ValueError(msg)
        task_id = str(task_id)

        kwargs: dict[str, Any] = {}
        for wire, attr in _WIRE_FIELDS.items():
            if wire not in image or image[wire] is None:
                continue
            value = image[wire]
            if attr in _TIMESTAMP_FIELDS:
                kwargs[attr] = parse_timestamp(value, task_id=task_id)
            elif attr == "status":
                kwargs[attr] = TaskStatus.parse(value)
            else:
                kwargs[attr] = str(value)

        if "user_id" not in kwargs and image.get("assigneeId"):
            kwargs["user_id"] = str(image["assigneeId"])

        return cls(
            task_id=task_id,
            name=kwargs.pop("name", ""),
            deadline=kwargs.pop("deadline", None),
            user_id=kwargs.pop("user_id", ""),
            **{k: v for k, v in kwargs.items() if k != "task_id"},
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> Task:
        data = json.loads(text)
        if not isinstance(data, dict):
            msg = "Task JSON must be an object"
            raise ValueError(msg)
        return cls.from_image(data)


def make_task_id() -> str:
    """Generate a new task ID."""
    return uuid.uuid4().hex
