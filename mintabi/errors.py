"""
Exception taxonomy for the plan board.

NotFound is fatal to the current view. Write failures are logged and
swallowed by the sync channel. Delete failures are turned into an outcome
by plans.destroy_plan. Malformed date input never raises: the edit is
simply dropped.
"""


class MintabiError(Exception):
    """Base class for all board errors."""
    pass


class InvalidEntity(MintabiError, ValueError):
    """Raised when a Card or DayColumn would violate its invariants."""
    pass


class CardNotFound(MintabiError, KeyError):
    """Raised when an operation names a card id that is not on the board."""
    pass


class ColumnNotFound(MintabiError, KeyError):
    """Raised when a column id is neither the stock bucket nor a day."""
    pass


class PlanNotFound(MintabiError):
    """Raised when a plan id does not resolve to a document."""

    def __init__(self, plan_id: str):
        super().__init__(f"Plan {plan_id} not found")
        self.plan_id = plan_id


class WriteFailure(MintabiError):
    """Raised by a document store when a write could not be applied."""
    pass


class DeleteFailure(MintabiError):
    """Raised by a document store when a delete could not be applied."""
    pass


class ConfigError(MintabiError):
    """Raised when configuration is invalid or incomplete."""
    pass
