"""Outcome classification for stages and whole runs.

A verdict is one of four frozen dataclasses. Code dispatches on the concrete
type (``isinstance``) rather than on string flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Literal, TypeAlias

VerdictStatus: TypeAlias = Literal["success", "failure", "aborted", "unstable"]
ALLOWED_STATUSES: tuple[str, ...] = ("success", "failure", "aborted", "unstable")


@dataclass(frozen=True)
class Success:
    status: ClassVar[VerdictStatus] = "success"


@dataclass(frozen=True)
class Failure:
    reason: str
    stage: str | None = None
    detail: str | None = None

    status: ClassVar[VerdictStatus] = "failure"

    def __post_init__(self) -> None:
        if not isinstance(self.reason, str) or not self.reason.strip():
            raise ValueError("Failure.reason must be a non-empty string")
        object.__setattr__(self, "reason", self.reason.strip())
        if self.stage is not None:
            if not isinstance(self.stage, str) or not self.stage.strip():
                raise ValueError("Failure.stage must be a non-empty string or None")
            object.__setattr__(self, "stage", self.stage.strip())


@dataclass(frozen=True)
class Unstable:
    reason: str

    status: ClassVar[VerdictStatus] = "unstable"

    def __post_init__(self) -> None:
        if not isinstance(self.reason, str) or not self.reason.strip():
            raise ValueError("Unstable.reason must be a non-empty string")
        object.__setattr__(self, "reason", self.reason.strip())


@dataclass(frozen=True)
class Aborted:
    reason: str = "aborted"

    status: ClassVar[VerdictStatus] = "aborted"


Verdict: TypeAlias = Success | Failure | Unstable | Aborted
VERDICT_TYPES: tuple[type, ...] = (Success, Failure, Unstable, Aborted)


def is_verdict(value: object) -> bool:
    return isinstance(value, VERDICT_TYPES)


def verdict_reason(verdict: Verdict) -> str | None:
    if isinstance(verdict, Success):
        return None
    return verdict.reason


def describe_verdict(verdict: Verdict) -> str:
    """Human-readable one-liner, e.g. ``FAILURE (build)``."""

    label = verdict.status.upper()
    reason = verdict_reason(verdict)
    if reason:
        return f"{label} ({reason})"
    return label
