from __future__ import annotations

from datetime import date
from enum import Enum


class ErrorKind(str, Enum):
    ADVISORY = "advisory"
    CONFIGURATION = "configuration"
    CONFLICT = "conflict"
    TRANSACTIONAL = "transactional"


class MatchingError(Exception):
    """Engine failure tagged with the category that decides how it propagates.

    Advisory problems are never raised; they surface as omissions in
    eligibility reports. The other kinds reach the caller of ``run_cycle``.
    """

    kind: ErrorKind = ErrorKind.TRANSACTIONAL

    def __init__(self, message: str, *, kind: ErrorKind | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "cause": repr(self.cause) if self.cause is not None else None,
        }


class InvalidConfiguration(MatchingError):
    kind = ErrorKind.CONFIGURATION


class DuplicateBatchError(MatchingError):
    kind = ErrorKind.CONFLICT

    def __init__(self, cycle_date: date, message: str | None = None, *, cause: BaseException | None = None) -> None:
        super().__init__(message or f"A match batch already exists for cycle {cycle_date.isoformat()}", cause=cause)
        self.cycle_date = cycle_date


class BatchFailed(MatchingError):
    kind = ErrorKind.TRANSACTIONAL

    def __init__(self, cycle_date: date, cause: BaseException) -> None:
        super().__init__(f"Batch commit for cycle {cycle_date.isoformat()} failed: {cause}", cause=cause)
        self.cycle_date = cycle_date
