"""
Custom exception classes and the FastAPI exception handler.

Why custom exceptions?
  Services raise domain-specific errors (like InsufficientFundsError)
  without importing HTTP concepts. The handler layer translates them into
  HTTP responses, so service code is testable without HTTP and every error
  response has the same shape:

      {"success": false, "message": ..., "detail": ..., "error_type": ...}

  Each class declares its own status_code and error_type; a single handler
  registered on the base class renders all of them. Request validation
  failures and framework HTTP errors (401/403 from the auth dependencies,
  unknown routes) are rendered in the same envelope.

Exception hierarchy:
    BankAPIError (base)
    ├── client errors (4xx, no side effects)
    │   ├── InsufficientFundsError, AccountNotFoundError, RecipientNotFoundError
    │   ├── SameAccountTransferError, CurrencyMismatchError, UnknownBillerError
    │   ├── OtpRequiredError, InvalidOtpError
    │   ├── TransactionNotFoundError, ReceiptNotFoundError, InvalidDateError
    │   └── UnauthorizedAccessError, AccountBlockedError, InvalidCredentialsError, ...
    ├── conflict errors (409, re-initiate instead of blind retry)
    │   ├── DuplicateReferenceError
    │   ├── BalanceConflictError
    │   └── DuplicateEmailError, ReconciliationError
    └── dependency / server errors
        ├── NotificationDeliveryError (503)
        └── TransferFailedError (500, opaque to the caller)
"""

import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class BankAPIError(Exception):
    """Base exception for all Bank API domain errors."""

    status_code: int = 400
    error_type: str = "bank_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def extra(self) -> dict[str, Any]:
        """Additional fields merged into the JSON error body."""
        return {}


# ---------------------------------------------------------------------------
# Client errors
# ---------------------------------------------------------------------------

class InsufficientFundsError(BankAPIError):
    """
    Raised when a debit, transfer or payment would cause a negative balance.

    Attributes:
        account_number: The account that lacks sufficient funds.
        requested_cents: The amount the user tried to move.
        available_cents: The current balance of the account.
    """

    status_code = 422
    error_type = "insufficient_funds"

    def __init__(
        self,
        account_number: str,
        requested_cents: int,
        available_cents: int,
    ):
        self.account_number = account_number
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient funds: requested {requested_cents} cents, "
            f"available {available_cents} cents"
        )

    def extra(self) -> dict[str, Any]:
        return {
            "requested_cents": self.requested_cents,
            "available_cents": self.available_cents,
        }


class AccountNotFoundError(BankAPIError):
    """Raised when a requested account does not exist."""

    status_code = 404
    error_type = "account_not_found"

    def __init__(self, account_ref: uuid.UUID | str):
        self.account_ref = account_ref
        super().__init__(f"Account {account_ref} not found")


class RecipientNotFoundError(BankAPIError):
    """Raised when an internal transfer names an account this bank doesn't hold."""

    status_code = 404
    error_type = "recipient_not_found"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Recipient account {account_number} not found in our bank")


class InvalidTransferError(BankAPIError):
    """Raised when a transfer or payment request is missing required details."""

    status_code = 422
    error_type = "invalid_transfer"


class SameAccountTransferError(BankAPIError):
    status_code = 422
    error_type = "same_account"

    def __init__(self):
        super().__init__("Cannot transfer to the same account")


class CurrencyMismatchError(BankAPIError):
    status_code = 422
    error_type = "currency_mismatch"

    def __init__(self, source_currency: str, recipient_currency: str):
        self.source_currency = source_currency
        self.recipient_currency = recipient_currency
        super().__init__(
            f"Cannot transfer {source_currency} into a {recipient_currency} account"
        )


class UnknownBillerError(BankAPIError):
    status_code = 404
    error_type = "biller_not_found"

    def __init__(self, biller_id: str):
        self.biller_id = biller_id
        super().__init__(f"Biller {biller_id} not found")


class OtpRequiredError(BankAPIError):
    """Raised when a money movement that needs an OTP is submitted without one."""

    status_code = 400
    error_type = "otp_required"

    def __init__(self):
        super().__init__("OTP is required to complete this operation")


class InvalidOtpError(BankAPIError):
    """
    Raised when OTP verification fails.

    The reason is one of "no_challenge", "expired" or "mismatch" and is
    exposed as error_type "otp_<reason>" so clients know whether to retry
    the code or re-initiate.
    """

    status_code = 400
    _messages = {
        "no_challenge": "No pending verification found. Please initiate again.",
        "expired": "OTP has expired. Please initiate again.",
        "mismatch": "Invalid OTP.",
    }

    def __init__(self, reason: str):
        self.reason = reason
        self.error_type = f"otp_{reason}"
        super().__init__(self._messages.get(reason, "OTP verification failed"))


class TransactionNotFoundError(BankAPIError):
    status_code = 404
    error_type = "transaction_not_found"

    def __init__(self, transaction_ref: uuid.UUID | str):
        self.transaction_ref = transaction_ref
        super().__init__(f"Transaction {transaction_ref} not found")


class ReceiptNotFoundError(BankAPIError):
    status_code = 404
    error_type = "receipt_not_found"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Receipt {reference} not found")


class InvalidDateError(BankAPIError):
    status_code = 422
    error_type = "invalid_date"


class UserNotFoundError(BankAPIError):
    status_code = 404
    error_type = "user_not_found"

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class CardNotFoundError(BankAPIError):
    status_code = 404
    error_type = "card_not_found"

    def __init__(self, card_id: uuid.UUID):
        self.card_id = card_id
        super().__init__(f"Card {card_id} not found")


class InvalidCardStatusError(BankAPIError):
    status_code = 409
    error_type = "invalid_card_status"


class UnauthorizedAccessError(BankAPIError):
    """Raised when a user attempts to access a resource they don't own."""

    status_code = 403
    error_type = "unauthorized_access"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class AccountBlockedError(BankAPIError):
    """Raised when a blocked user tries to move money."""

    status_code = 403
    error_type = "account_blocked"

    def __init__(self):
        super().__init__(
            "You cannot make any transactions because your profile has been "
            "blocked. Please contact support for assistance."
        )


class DuplicateEmailError(BankAPIError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = 409
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


# ---------------------------------------------------------------------------
# Conflict errors
# ---------------------------------------------------------------------------

class DuplicateReferenceError(BankAPIError):
    """
    Raised when a transaction reference is already taken.

    References are generated with a random suffix, so a collision points at
    a caller bug rather than bad luck; it is not retried automatically.
    """

    status_code = 409
    error_type = "duplicate_reference"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Transaction reference {reference} already exists")


class BalanceConflictError(BankAPIError):
    """Raised when the account balance changed between read and debit."""

    status_code = 409
    error_type = "balance_conflict"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(
            f"Account {account_number} was modified by a concurrent operation. "
            "Please initiate the operation again."
        )


class ReconciliationError(BankAPIError):
    status_code = 409
    error_type = "reconciliation_error"


# ---------------------------------------------------------------------------
# Dependency / server errors
# ---------------------------------------------------------------------------

class NotificationDeliveryError(BankAPIError):
    """Raised when the OTP email could not be delivered."""

    status_code = 503
    error_type = "notification_failed"

    def __init__(self, detail: str = "Could not deliver the verification code. Please try again."):
        super().__init__(detail)


class TransferFailedError(BankAPIError):
    """
    Raised when the commit step fails for a non-domain reason.

    The message is deliberately opaque; the orchestrator logs the cause
    with user, account and reference for manual reconciliation.
    """

    status_code = 500
    error_type = "transfer_failed"

    def __init__(self, detail: str = "Transfer failed"):
        super().__init__(detail)


class LoanApplicationNotFoundError(BankAPIError):
    status_code = 404
    error_type = "loan_application_not_found"

    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__("Application not found")


class LoanApplicationClosedError(BankAPIError):
    """Raised when a decision is recorded on an already approved or rejected application."""

    status_code = 409
    error_type = "loan_application_closed"

    def __init__(self, application_id: str, status: str):
        self.application_id = application_id
        super().__init__(f"Application {application_id} is already {status}")


# ---------------------------------------------------------------------------
# FastAPI exception handler
# ---------------------------------------------------------------------------

_HTTP_ERROR_TYPES = {
    401: "not_authenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def _error_body(message: Any, error_type: str, **extra: Any) -> dict[str, Any]:
    return {
        "success": False,
        "message": message,
        "detail": message,
        "error_type": error_type,
        **extra,
    }


def _describe_validation_errors(errors: list[dict[str, Any]]) -> str:
    parts = []
    for error in errors:
        # Drop the leading "body"/"query"/"path" segment
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the exception handlers with the FastAPI application.

    Every BankAPIError subclass is mapped to its own status code; request
    validation errors and framework HTTP errors get the same JSON body.
    This is called once during app startup in main.py.
    """

    @app.exception_handler(BankAPIError)
    async def bank_api_error_handler(
        request: Request, exc: BankAPIError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.error_type, **exc.extra()),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        return JSONResponse(
            status_code=422,
            content=_error_body(
                _describe_validation_errors(errors),
                "validation_error",
                errors=jsonable_encoder(errors),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                exc.detail,
                _HTTP_ERROR_TYPES.get(exc.status_code, "http_error"),
            ),
            headers=getattr(exc, "headers", None),
        )
