"""Error taxonomy for the client engagement engine.

NotFoundError and InvalidStateError are recoverable and surfaced to the caller.
PersistenceError wraps failed store operations. ValidationError flags malformed input.
"""


class EngagementError(Exception):
    """Base class for all engine errors."""


class NotFoundError(EngagementError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found.")


class InvalidStateError(EngagementError):
    """An illegal state transition was attempted."""

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class PersistenceError(EngagementError):
    """A store operation failed."""


class ValidationError(EngagementError):
    """Malformed input, e.g. a negative day of month."""
