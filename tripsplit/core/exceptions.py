"""
Domain exceptions for the expense core.

Every failure the core can report is an ``AppError`` carrying a machine
readable ``kind``, a human message, the HTTP status it maps to and,
for input problems, the offending field. None of these classes know
about FastAPI; the handlers in ``tripsplit.core.errors`` translate them.
"""
from typing import Optional


class AppError(Exception):
    """Base class for expected, user-facing failures."""
    kind = "app_error"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(AppError):
    """Bad input shape or range."""
    kind = "validation_error"
    status_code = 422


class SplitError(ValidationError):
    """Shares that do not form a valid split of an expense."""
    kind = "split_error"


class SplitMismatch(SplitError):
    kind = "split_mismatch"


class PercentageOutOfRange(SplitError):
    kind = "percentage_out_of_range"


class PercentageSumMismatch(SplitError):
    kind = "percentage_sum_mismatch"


class AccessDenied(AppError):
    kind = "access_denied"
    status_code = 403


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404


class ShareNotFound(NotFoundError):
    kind = "share_not_found"


class AlreadySettled(AppError):
    kind = "already_settled"
    status_code = 409


class ConcurrencyConflict(AppError):
    """The record changed between read and write."""
    kind = "concurrency_conflict"
    status_code = 409
