from typing import Optional

from fastapi import status


class AppError(Exception):
    """Base error rendered as {"success": false, "error": detail}."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, status_code: Optional[int] = None):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Already exists"


class InsufficientCreditsError(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "Insufficient credits. Please upgrade to Pro."

    def __init__(self, balance: int = 0, detail: Optional[str] = None):
        self.balance = balance
        super().__init__(detail)


class UpstreamError(AppError):
    """AI gateway or storage failure. Written into failed generations."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service failed"


class ConfigurationError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service not configured"


class WebhookVerificationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Invalid signature"
