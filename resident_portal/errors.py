from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ProfilingError(Exception):
    """Base class for everything the intake workflow reports back to a caller."""

    kind = "error"

    def to_detail(self) -> Dict[str, Any]:
        return {"kind": self.kind, "reason": str(self)}


class ProfileValidationError(ProfilingError):
    """
    A named field failed a rule. Always recoverable by correcting that field.

    section: household | spouse | composition | census
    index: position in the dependents list (composition only)
    """

    kind = "validation"

    def __init__(
        self,
        field: str,
        reason: str,
        *,
        section: Optional[str] = None,
        index: Optional[int] = None,
    ) -> None:
        super().__init__(reason)
        self.field = field
        self.reason = reason
        self.section = section
        self.index = index

    def to_detail(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "field": self.field,
            "reason": self.reason,
            "section": self.section,
            "index": self.index,
        }


class PersistenceError(ProfilingError):
    """The profile store rejected a read or write. No automatic retry."""

    kind = "persistence"

    def __init__(self, operation: str, detail: str = "") -> None:
        super().__init__(f"{operation} failed: {detail}" if detail else f"{operation} failed")
        self.operation = operation
        self.detail = detail

    def to_detail(self) -> Dict[str, Any]:
        return {"kind": self.kind, "operation": self.operation, "reason": str(self)}


class InconsistentStateError(ProfilingError):
    """An internal invariant was violated (e.g. spouse without Married head)."""

    kind = "inconsistent_state"


class WizardNavigationError(ProfilingError):
    """A step move that the current wizard/status state does not allow."""

    kind = "navigation"


class StatusTransitionError(ProfilingError):
    """A submission or review decision the current profile status does not allow."""

    kind = "transition"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Discriminated success/failure value returned by the public operations.

    ok=True  -> value is set
    ok=False -> error is set (never raised to the caller)
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ProfilingError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ProfilingError) -> "Result[T]":
        return cls(ok=False, error=error)
