"""Error taxonomy for the points ledger.

Validation errors and business-rule rejections are raised before any storage
mutation and carry a stable ``code`` that callers surface verbatim. Consistency
violations and storage failures abort the unit of work; callers report them as
a generic failure while logs and counters keep them apart for alerting.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger failures."""

    code = "ledger_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class LedgerValidationError(LedgerError):
    """Request is malformed or references unknown state."""

    code = "validation_error"


class InvalidAmountError(LedgerValidationError):
    code = "invalid_amount"


class CustomerNotFoundError(LedgerValidationError):
    code = "customer_not_found"

    def __init__(self, customer_id: str) -> None:
        super().__init__(f"Customer {customer_id} not found")
        self.customer_id = customer_id


class CustomerAlreadyExistsError(LedgerValidationError):
    code = "customer_exists"

    def __init__(self, phone_number: str, customer_id: str) -> None:
        super().__init__("Customer already exists with this phone number")
        self.phone_number = phone_number
        self.customer_id = customer_id


class LedgerRejection(LedgerError):
    """Well-formed request refused by a business rule."""

    code = "rejected"


class InsufficientBalanceError(LedgerRejection):
    code = "insufficient_balance"

    def __init__(self, balance: int, requested: int) -> None:
        super().__init__("Insufficient points balance")
        self.balance = balance
        self.requested = requested


class CustomerInactiveError(LedgerRejection):
    code = "customer_inactive"

    def __init__(self, customer_id: str) -> None:
        super().__init__(f"Customer {customer_id} is inactive")
        self.customer_id = customer_id


class PurchaseTooSmallError(LedgerRejection):
    code = "purchase_too_small"

    def __init__(self, purchase_amount: object) -> None:
        super().__init__("Purchase amount too small to earn points")
        self.purchase_amount = purchase_amount


class LedgerConsistencyError(LedgerError):
    """Balance and batches disagreed before this operation started."""

    code = "consistency_violation"

    def __init__(self, message: str, *, customer_id: str) -> None:
        super().__init__(message)
        self.customer_id = customer_id


class LedgerStorageError(LedgerError):
    """Unit of work could not be applied by the database."""

    code = "storage_failure"


__all__ = [
    "CustomerAlreadyExistsError",
    "CustomerInactiveError",
    "CustomerNotFoundError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "LedgerConsistencyError",
    "LedgerError",
    "LedgerRejection",
    "LedgerStorageError",
    "LedgerValidationError",
    "PurchaseTooSmallError",
]
