"""
Typed business-rule failures.

Services raise these; ``register_exception_handlers`` maps them onto JSON
responses so routers never translate errors by hand.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for recoverable business-rule failures"""
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidAmount(DomainError):
    default_detail = "Amount must be a positive finite number"


class AmountExceedsOwed(DomainError):
    default_detail = "Repayment amount exceeds the amount owed"


class PayloadTooLarge(DomainError):
    status_code = 413
    default_detail = "Uploaded file is too large"


class OutOfRange(DomainError):
    default_detail = "Amount is outside the allowed range"


class TooManyActiveLoans(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Maximum number of active loans reached"


class NotVerified(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Identity verification (KYC) is required"


class AccountFrozen(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Account is frozen. Please contact support."


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class InvalidTransition(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Operation not allowed in the current status"


class InsufficientFunds(DomainError):
    default_detail = "Insufficient balance"


class RateLimited(DomainError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many attempts within the last hour"


class CreditScoreTooLow(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Credit score too low to withdraw"


class NotEligible(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not eligible for this product"


class InvalidGuarantor(DomainError):
    default_detail = "Guarantor must be another registered user"


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a DomainError as JSON with its own status code"""
    logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
