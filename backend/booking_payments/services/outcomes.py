# backend/booking_payments/services/outcomes.py
"""
Result types for operations with a best-effort compensation step.

A recovery that authorized a new hold but failed to persist it tries to
cancel that hold. The caller needs both results, so they travel together
as ``CompensatedOutcome(primary, compensation)`` where ``compensation`` is a
``StepResult`` or ``NOT_ATTEMPTED``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class StepResult:
    succeeded: bool
    detail: Optional[str] = None

    @classmethod
    def ok(cls, detail: Optional[str] = None) -> "StepResult":
        return cls(succeeded=True, detail=detail)

    @classmethod
    def failed(cls, detail: str) -> "StepResult":
        return cls(succeeded=False, detail=detail)

    @property
    def attempted(self) -> bool:
        return True

    def describe(self) -> Dict[str, Any]:
        return {"attempted": True, "succeeded": self.succeeded, "detail": self.detail}


class NotAttempted:
    """Marker for a compensation step that was never run."""

    _instance: Optional["NotAttempted"] = None

    def __new__(cls) -> "NotAttempted":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    succeeded = False
    detail = None

    @property
    def attempted(self) -> bool:
        return False

    def describe(self) -> Dict[str, Any]:
        return {"attempted": False, "succeeded": False, "detail": None}

    def __repr__(self) -> str:
        return "NOT_ATTEMPTED"


NOT_ATTEMPTED = NotAttempted()

CompensationResult = Union[StepResult, NotAttempted]


@dataclass(frozen=True)
class CompensatedOutcome:
    primary: StepResult
    compensation: CompensationResult = NOT_ATTEMPTED
