"""
Domain errors raised by the replenishment services.

The API layer maps each class to an HTTP status via ``status_code``;
batch operations catch them per pair and report them instead.
"""


class ShelfSenseError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShelfSenseError):
    """Missing or invalid input, rejected before touching the store."""

    status_code = 422


class NotFoundError(ShelfSenseError):
    """Referenced id does not exist."""

    status_code = 404


class ConflictError(ShelfSenseError):
    """Uniqueness violation (duplicate daily report, duplicate assignment, ...)."""

    status_code = 409


class PreconditionError(ShelfSenseError):
    """Invalid state transition, e.g. cancelling an already-delivered request."""

    status_code = 400


class StorageError(ShelfSenseError):
    """Underlying store failure; the unit of work was rolled back."""

    status_code = 503
