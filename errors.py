"""
Rejections raised by tracker commands.

Every failure is a precondition violation against the current State: nothing
is retried, callers re-read state and issue a new command.
"""


class LabError(Exception):
    """Base class; `message` is safe to show to the user."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LabError):
    status_code = 404


class InvalidStateError(LabError):
    status_code = 409


class InsufficientStockError(LabError):
    status_code = 409


class ConflictError(LabError):
    status_code = 409


class DuplicateError(LabError):
    status_code = 409

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class ValidationError(LabError):
    status_code = 400


class ForbiddenError(LabError):
    status_code = 403
