"""Exceptions raised by the companion core."""


class CompanionError(Exception):
    """Base exception for companion errors."""

    pass


class NotFound(CompanionError, LookupError):
    """Raised when a goal, record or aggregate does not exist."""

    pass


class InvalidGoal(CompanionError, ValueError):
    """Raised when a goal cannot be evaluated or modified as requested."""

    pass


class InvalidCadence(InvalidGoal):
    """Raised for an unsupported cadence literal."""

    pass


class AggregateUpdateError(CompanionError):
    """Raised when one or more aggregates could not be updated for an event."""

    def __init__(self, event_id: str, errors: list[tuple[str, Exception]]):
        self.event_id = event_id
        self.errors = errors
        keys = ", ".join(key for key, _ in errors)
        super().__init__(f"Failed to apply progress event {event_id} to: {keys}")
