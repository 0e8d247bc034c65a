"""SQLAlchemy models package."""

from .customer import Customer  # noqa: F401
from .ledger import LedgerEntryKind, PointsBatch, PointsLedgerEntry  # noqa: F401
from .notification import MessageLog, MessageStatusEnum, MessageTypeEnum  # noqa: F401
