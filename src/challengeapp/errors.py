"""Error taxonomy shared by the services and the HTTP surface."""

from typing import Optional


class AppError(Exception):
    """Base error for every failure a service reports to its caller."""

    code = "APP_ERROR"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(AppError):
    """Malformed or out-of-range input. Raised before any mutation."""

    code = "VALIDATION"
    status_code = 400


class NotFoundError(AppError):
    """The record does not exist or is not owned by the caller."""

    code = "FORBIDDEN"
    status_code = 404


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class PaymentBlockedError(AppError):
    """Activity rejected because the athlete has an installment overdue past tolerance."""

    code = "PAYMENT_BLOCKED"
    status_code = 402

    def __init__(self, message: str, verdict=None):
        super().__init__(message)
        self.verdict = verdict


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
