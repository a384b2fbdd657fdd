"""Error types raised by the activity tracker."""

from __future__ import annotations

from typing import Iterable, Optional


class PaceError(Exception):
    """Base class for every failure reported to callers."""

    kind = "PaceError"


class ConfigError(PaceError):
    kind = "ConfigError"


class NotFound(PaceError):
    kind = "NotFound"

    def __init__(self, activity_id: str) -> None:
        super().__init__(f"No activity found for id={activity_id}")
        self.activity_id = activity_id


class ValidationFailure(PaceError):
    kind = "ValidationFailure"


class StorageFailure(PaceError):
    """Wraps an error reported by a storage backend."""

    kind = "StorageFailure"


class TimeResolutionError(PaceError):
    kind = "TimeResolutionError"


class InvalidTimeExpression(TimeResolutionError):
    kind = "InvalidTimeExpression"


class InvalidTimeRange(TimeResolutionError):
    kind = "InvalidTimeRange"


class TimeInFuture(TimeResolutionError):
    kind = "TimeInFuture"


class EndBeforeBegin(TimeResolutionError):
    kind = "EndBeforeBegin"


class LifecycleError(PaceError):
    kind = "LifecycleError"


class AlreadyActive(LifecycleError):
    kind = "AlreadyActive"


class NoActiveActivity(LifecycleError):
    kind = "NoActiveActivity"


class AlreadyHeld(LifecycleError):
    kind = "AlreadyHeld"


class NotHeld(LifecycleError):
    kind = "NotHeld"


class AmbiguousTarget(LifecycleError):
    """Several entries qualify; the caller has to pick one explicitly."""

    kind = "AmbiguousTarget"

    def __init__(self, message: str, candidates: Optional[Iterable[str]] = None) -> None:
        super().__init__(message)
        self.candidates: list[str] = list(candidates or [])


class CannotAdjustEnded(LifecycleError):
    kind = "CannotAdjustEnded"
