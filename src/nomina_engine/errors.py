"""Domain exceptions raised by the nomina engine."""

from __future__ import annotations

from uuid import UUID


class NominaError(Exception):
    """Base class for engine errors."""


class InvalidTransitionError(NominaError):
    """Raised when an invalid period state transition is attempted."""

    def __init__(self, from_state: str, to_state: str, reason: str | None = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        msg = f"Invalid transition from '{from_state}' to '{to_state}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class AuditReasonRequiredError(InvalidTransitionError):
    """Raised when a transition touching 'closed' has no reason."""

    def __init__(self, from_state: str, to_state: str):
        super().__init__(from_state, to_state, "a reason is required to cross the closed boundary")


class PeriodNotFoundError(NominaError):
    """Raised when a period does not exist for the requesting company."""

    def __init__(self, period_id: UUID):
        self.period_id = period_id
        super().__init__(f"Period {period_id} not found")


class ClosedPeriodError(NominaError):
    """Raised when an ordinary edit targets a closed period."""

    def __init__(self, period_id: UUID, action: str = "edit"):
        self.period_id = period_id
        self.action = action
        super().__init__(
            f"Period {period_id} is closed; '{action}' requires a reliquidation"
        )


class DuplicatePeriodError(NominaError):
    """Raised when a period slot is already taken by a different range."""

    def __init__(self, company_id: UUID, year: int, periodicity: str, sequence_number: int):
        self.company_id = company_id
        self.year = year
        self.periodicity = periodicity
        self.sequence_number = sequence_number
        super().__init__(
            f"Period {periodicity} #{sequence_number} of {year} already exists "
            f"for company {company_id}"
        )


class PeriodLockedError(NominaError):
    """Raised when another operation currently holds the period."""

    def __init__(self, period_id: UUID):
        self.period_id = period_id
        super().__init__(f"Period {period_id} is locked by another operation")


class CalculationError(NominaError):
    """Raised by the calculator when an employee's inputs cannot be computed."""

    def __init__(self, message: str, employee_id: UUID | None = None):
        self.employee_id = employee_id
        super().__init__(message)
