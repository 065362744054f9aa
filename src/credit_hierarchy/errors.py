from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCodes:
    UNAUTHENTICATED = "UNAUTHENTICATED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    DUPLICATE_ACCOUNT = "DUPLICATE_ACCOUNT"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    STORE_ERROR = "STORE_ERROR"


class AuthFailure(Exception):
    """
    Single uniform authorization failure.

    The message never carries the reason; callers log the cause themselves
    before raising.
    """

    code = ErrorCodes.UNAUTHENTICATED

    def __init__(self) -> None:
        super().__init__("Authentication required")


class BusinessRuleFailure(ValueError):
    code = ErrorCodes.VALIDATION_ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)


class InsufficientBalance(BusinessRuleFailure):
    code = ErrorCodes.INSUFFICIENT_BALANCE

    def __init__(self, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__("Insufficient balance", context)


class DuplicateAccountError(BusinessRuleFailure):
    code = ErrorCodes.DUPLICATE_ACCOUNT

    def __init__(self, field: str) -> None:
        self.field = field
        if field == "name":
            super().__init__("This name is already in use")
        else:
            super().__init__("This username is already taken")


class AccountNotFound(BusinessRuleFailure):
    code = ErrorCodes.ACCOUNT_NOT_FOUND


class StoreError(Exception):
    """Raised by DB managers when the backend fails or aborts a unit of work."""

    code = ErrorCodes.STORE_ERROR

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        self.original_error = original_error
        super().__init__(message)


class TransactionFailure(Exception):
    """A unit of work was rolled back because of a store-level failure."""

    code = ErrorCodes.TRANSACTION_FAILED

    def __init__(self, original_error: Optional[BaseException] = None) -> None:
        self.original_error = original_error
        super().__init__("Internal server error")
