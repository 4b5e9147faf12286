"""Uniform result of a trip store mutation."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pytrip.models.trip import Trip


class FailureReason(StrEnum):
    NOT_FOUND = "not_found"
    STORAGE = "storage"
    INVALID_INPUT = "invalid_input"
    PRECONDITION = "precondition"


class MutationResult(BaseModel):
    """Outcome of a mutation.

    ``trip`` is the published snapshot on success. On failure ``reason``
    and ``message`` describe why and the store state is unchanged; the
    caller decides whether the failure is user-visible.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    ok: bool
    reason: FailureReason | None = None
    message: str | None = None
    trip: Trip | None = None

    @classmethod
    def success(cls, trip: Trip | None = None) -> MutationResult:
        return cls(ok=True, trip=trip)

    @classmethod
    def failure(cls, reason: FailureReason, message: str) -> MutationResult:
        return cls(ok=False, reason=reason, message=message)

    def __bool__(self) -> bool:
        return self.ok
