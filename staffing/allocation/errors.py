"""Error types for the allocation ledger.

Business-rule failures carry a machine-readable code so callers can map them
to user-facing messages without parsing text.

Standard error codes:
- NO_PERSON_SELECTED: Commit attempted before a person was selected
- SESSION_CLOSED: Operation attempted on a committed or cancelled session
- PERSON_LOCKED: Person change attempted while editing an existing allocation
- BASELINE_PENDING: Commit attempted while the baseline fetch is still in flight
- OVER_ALLOCATED: At least one slot's projected approved occupancy hits the limit
- BASELINE_UNAVAILABLE: A capacity source could not supply baseline totals
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from staffing.allocation.types import TimeSlot


class InvalidSessionStateError(RuntimeError):
    """Raised when an edit session is used outside its valid lifecycle.

    Attributes:
        code: Error code (e.g., "NO_PERSON_SELECTED", "SESSION_CLOSED", "BASELINE_PENDING")
    """

    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__(f"{code}: {message}")


@dataclass(frozen=True)
class OffendingSlot:
    """A slot that blocks a commit, with its projected approved percentage."""

    slot: TimeSlot
    approved_percentage: Decimal


class OverAllocationError(RuntimeError):
    """Raised when a commit would push approved occupancy to or past the limit.

    Attributes:
        code: Always "OVER_ALLOCATED"
        offending: Every slot that blocks the commit, in window order
    """

    def __init__(self, offending: list[OffendingSlot]):
        self.code = "OVER_ALLOCATED"
        self.offending = offending
        details = ", ".join(f"{o.slot}={o.approved_percentage:.0f}%" for o in offending)
        super().__init__(f"{self.code}: {details}")


class BaselineUnavailableError(RuntimeError):
    """Raised by a capacity source that cannot supply baseline totals."""

    def __init__(self, person_id: str, reason: str):
        self.code = "BASELINE_UNAVAILABLE"
        self.person_id = person_id
        super().__init__(f"{self.code}: person_id={person_id} {reason}")
