"""Outcome values shared by every entry point.

Components report what happened instead of raising. ``classify_error``
turns a collaborator exception into the matching outcome so that callers
can tell a throttled dependency from a broken request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

import httpx
import redis.exceptions


class Outcome(StrEnum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    SKIPPED = "skipped"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"

    @property
    def ok(self) -> bool:
        """True for outcomes that do not indicate a failure."""
        return self in (Outcome.SUCCESS, Outcome.NOT_FOUND, Outcome.SKIPPED)


_TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}


def classify_error(exc: BaseException) -> Outcome:
    """Map a collaborator exception to an outcome."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 404:
            return Outcome.NOT_FOUND
        if status in _TRANSIENT_STATUS or status >= 500:
            return Outcome.TRANSIENT_FAILURE
        return Outcome.PERMANENT_FAILURE
    if isinstance(exc, (httpx.TransportError, redis.exceptions.ConnectionError)):
        return Outcome.TRANSIENT_FAILURE
    if isinstance(exc, (TimeoutError, redis.exceptions.TimeoutError, ConnectionError)):
        return Outcome.TRANSIENT_FAILURE
    return Outcome.PERMANENT_FAILURE


@dataclass
class BatchReport:
    """Fold of per-record outcomes for a batch entry point.

    Attributes:
        processed: Records that completed their intended action.
        outcomes: One outcome per record, in input order.
        errors: Human-readable descriptions of failed or skipped records.
    """

    processed: int = 0
    outcomes: list[Outcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def record(self, outcome: Outcome, error: str | None = None) -> None:
        """Add one record's result to the fold."""
        self.outcomes.append(outcome)
        if outcome is Outcome.SUCCESS:
            self.processed += 1
        if error:
            self.errors.append(error)

    @property
    def message(self) -> str:
        if self.errors:
            return (
                f"Processed {self.processed} records with {len(self.errors)} issues: "
                + "; ".join(self.errors)
            )
        return f"Successfully processed {self.processed} records."
