"""Period state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from nomina_engine.errors import AuditReasonRequiredError, InvalidTransitionError


class PeriodState(str, Enum):
    """Period state values."""

    DRAFT = "draft"
    PROCESSING = "processing"
    CLOSED = "closed"


class PeriodStateMachine:
    """State machine for period state transitions.

    Allowed transitions:
    - draft → processing
    - draft → closed
    - processing → closed
    - closed → processing (reopen, audited)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodState.DRAFT: [PeriodState.PROCESSING, PeriodState.CLOSED],
        PeriodState.PROCESSING: [PeriodState.CLOSED],
        PeriodState.CLOSED: [PeriodState.PROCESSING],
    }

    # States accepting ordinary edits (records, novedades)
    EDITABLE = {
        PeriodState.DRAFT,
        PeriodState.PROCESSING,
    }

    @classmethod
    def can_transition(cls, from_state: str, to_state: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_state, [])
        return to_state in allowed

    @classmethod
    def validate_transition(
        cls, from_state: str, to_state: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid.

        Transitions into or out of 'closed' also require a reason.
        """
        if not cls.can_transition(from_state, to_state):
            raise InvalidTransitionError(from_state, to_state)
        if cls.touches_closed(from_state, to_state) and not reason:
            raise AuditReasonRequiredError(from_state, to_state)

    @classmethod
    def is_editable(cls, state: str) -> bool:
        """Check if ordinary edits are allowed in this state."""
        return state in cls.EDITABLE

    @classmethod
    def touches_closed(cls, from_state: str, to_state: str) -> bool:
        """Check if the transition crosses the closed boundary."""
        return PeriodState.CLOSED in (from_state, to_state)

    @classmethod
    def is_reopen(cls, from_state: str, to_state: str) -> bool:
        """Check if this transition is a reopen (closed → processing)."""
        return from_state == PeriodState.CLOSED and to_state == PeriodState.PROCESSING

    @classmethod
    def get_next_states(cls, current_state: str) -> list[str]:
        """Get list of valid next states from current state."""
        return cls.VALID_TRANSITIONS.get(current_state, [])
