"""Deposit/spend draft lifecycle."""

from enum import Enum
from typing import Iterable

from shieldpool.exceptions import InvalidProtocolStateError


class ProtocolState(Enum):
    """
    BUILT -> VALIDATED -> PROVED -> SUBMITTED

    CANCELLED is reachable from any state before SUBMITTED. Nothing is
    persisted before SUBMITTED, so cancelling has no side effects.
    """

    BUILT = "built"
    VALIDATED = "validated"
    PROVED = "proved"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


def require_state(current: ProtocolState, allowed: Iterable[ProtocolState], action: str) -> None:
    """Raise InvalidProtocolStateError unless current is one of allowed."""
    allowed = tuple(allowed)
    if current not in allowed:
        names = ", ".join(s.value for s in allowed)
        raise InvalidProtocolStateError(
            f"Cannot {action} from state '{current.value}' (expected one of: {names})"
        )


PRE_SUBMISSION = (ProtocolState.BUILT, ProtocolState.VALIDATED, ProtocolState.PROVED)
