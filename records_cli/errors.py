class RecordsError(Exception):
    """Base class for rejected record operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RecordsError):
    """The request is malformed or not allowed in the current state."""


class CapacityError(RecordsError):
    """A policy limit blocks the request, e.g. an already active enrollment."""


class NotFoundError(RecordsError):
    """A command referenced an id that does not exist."""
