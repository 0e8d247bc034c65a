"""Points ledger engine: accrual, redemption and expiry of points batches."""

from .accrual import AccrualEngine, AccrualResult
from .errors import (
    CustomerAlreadyExistsError,
    CustomerInactiveError,
    CustomerNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    LedgerConsistencyError,
    LedgerError,
    LedgerRejection,
    LedgerStorageError,
    LedgerValidationError,
    PurchaseTooSmallError,
)
from .events import LedgerEvent, LedgerEventDispatcher, get_ledger_dispatcher
from .expiry import ExpiryReconciler, ExpiryResult
from .periods import DatePreset
from .query import (
    LedgerFilters,
    LedgerPage,
    LedgerQueryService,
    LedgerSort,
    LedgerSortField,
    LedgerSummary,
    Pagination,
    SortOrder,
)
from .redemption import RedemptionEngine, RedemptionResult
from .service import BalanceSnapshot, LedgerService, UpcomingExpiry
from .store import ExpiringPointsWindow, LedgerStore

__all__ = [
    "AccrualEngine",
    "AccrualResult",
    "BalanceSnapshot",
    "CustomerAlreadyExistsError",
    "CustomerInactiveError",
    "CustomerNotFoundError",
    "DatePreset",
    "ExpiringPointsWindow",
    "ExpiryReconciler",
    "ExpiryResult",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "LedgerConsistencyError",
    "LedgerError",
    "LedgerEvent",
    "LedgerEventDispatcher",
    "LedgerFilters",
    "LedgerPage",
    "LedgerQueryService",
    "LedgerRejection",
    "LedgerService",
    "LedgerSort",
    "LedgerSortField",
    "LedgerStorageError",
    "LedgerStore",
    "LedgerSummary",
    "LedgerValidationError",
    "Pagination",
    "PurchaseTooSmallError",
    "RedemptionEngine",
    "RedemptionResult",
    "SortOrder",
    "UpcomingExpiry",
    "get_ledger_dispatcher",
]
