"""
coachconnect/errors.py
─────────────────────────────────────────────────────────────────────
خطاهای دامنه: هر خطا یک کد پایدار و یک پیام قابل نمایش به کاربر دارد.
Domain error codes grouped in five categories:
Validation / NotFound / Conflict / Unauthorized / ExternalDependency.
"""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    # ── Validation ───────────────────────────
    INVALID_INPUT           = "INVALID_INPUT"
    AGE_REQUIREMENT         = "AGE_REQUIREMENT"

    # ── NotFound ─────────────────────────────
    SESSION_NOT_FOUND        = "SESSION_NOT_FOUND"
    PARTICIPANT_NOT_FOUND    = "PARTICIPANT_NOT_FOUND"
    PAYMENT_NOT_FOUND        = "PAYMENT_NOT_FOUND"
    REFUND_REQUEST_NOT_FOUND = "REFUND_REQUEST_NOT_FOUND"
    USER_NOT_FOUND           = "USER_NOT_FOUND"

    # ── Conflict ─────────────────────────────
    SESSION_NOT_OPEN          = "SESSION_NOT_OPEN"
    SESSION_FULL              = "SESSION_FULL"
    ALREADY_ENROLLED          = "ALREADY_ENROLLED"
    OWN_SESSION               = "OWN_SESSION"
    NOT_ENROLLED              = "NOT_ENROLLED"
    SESSION_ALREADY_STARTED   = "SESSION_ALREADY_STARTED"
    SESSION_NOT_STARTED       = "SESSION_NOT_STARTED"
    SESSION_LOCKED            = "SESSION_LOCKED"
    DUPLICATE_REFUND_REQUEST  = "DUPLICATE_REFUND_REQUEST"
    INVALID_REFUND_STATUS     = "INVALID_REFUND_STATUS"
    CASH_NOT_REFUNDABLE       = "CASH_NOT_REFUNDABLE"
    REPORT_WINDOW_CLOSED      = "REPORT_WINDOW_CLOSED"
    INVALID_TRANSITION        = "INVALID_TRANSITION"

    # ── Unauthorized ─────────────────────────
    NOT_ALLOWED             = "NOT_ALLOWED"

    # ── ExternalDependency ───────────────────
    GATEWAY_FAILURE         = "GATEWAY_FAILURE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidInputError(DomainError):
    """Malformed or out-of-range input; nothing was changed."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.INVALID_INPUT) -> None:
        super().__init__(code=code, message=message)


class NotFoundError(DomainError):
    """Referenced session / participant / payment / request does not exist."""


class ConflictError(DomainError):
    """Operation is not valid for the current state of the records."""


class UnauthorizedError(DomainError):
    """Actor lacks the role or ownership the operation requires."""

    def __init__(self, message: str = "شما مجاز به انجام این عملیات نیستید.") -> None:
        super().__init__(code=ErrorCode.NOT_ALLOWED, message=message)


class ExternalDependencyError(DomainError):
    """Payment gateway failed; the attempt is recorded as failed or retryable."""

    def __init__(self, message: str = "خطا در ارتباط با درگاه پرداخت.") -> None:
        super().__init__(code=ErrorCode.GATEWAY_FAILURE, message=message)
