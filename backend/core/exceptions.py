"""
Planning error taxonomy.

All errors subclass ValueError so service callers that only care about
"bad request vs. everything else" can keep catching ValueError.
"""


class PlanningError(ValueError):
    """Base class for request-level planning errors."""


class ValidationError(PlanningError):
    """Missing identifier or malformed filter. Rejects the whole call."""


class NotFoundError(PlanningError):
    """Referenced recommendation, SKU, warehouse or dealer does not exist."""


class StateConflictError(PlanningError):
    """Transition attempted on a record that is no longer in the expected state."""

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class InsufficientStockError(PlanningError):
    """A debit would take an inventory record below zero."""
