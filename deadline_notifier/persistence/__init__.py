"""Persistence layer for the notification ledger.

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine
    - create_database_engine(database_url: str) -> Engine

    # Ledger
    - NotificationLedger: idempotency checks, outcome records, history, stats
    - NotificationRepository: session-scoped queries behind the ledger

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - DataIntegrityError: Constraint violations
    - DuplicateNotificationError: A sent record already exists for the key

Example usage:
    >>> from deadline_notifier.persistence import init_database, NotificationLedger
    >>> init_database("sqlite:///./data/notifications.db")
    >>> ledger = NotificationLedger()
    >>> ledger.already_notified("2025.000123", Bucket.DUE_TODAY)
    False
"""

from .database import (
    close_database,
    create_database_engine,
    get_engine,
    get_session,
    init_database,
    redact_url,
)
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    DuplicateNotificationError,
    PersistenceError,
)
from .ledger import BatchRecordResult, NotificationLedger
from .repositories import HistoryPage, LedgerStats, NotificationRepository

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "create_database_engine",
    "redact_url",
    # Ledger
    "NotificationLedger",
    "NotificationRepository",
    "BatchRecordResult",
    "HistoryPage",
    "LedgerStats",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "DataIntegrityError",
    "DuplicateNotificationError",
]
