"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError so callers can
catch every storage failure with a single except clause.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database not initialized before use
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint violation occurs."""

    pass


class DuplicateNotificationError(DataIntegrityError):
    """A ``sent`` record already exists for this protocol and bucket.

    Raised when the ledger's unique index rejects a write. Callers treat
    it as "already handled by another run", never as a failure to retry.

    Attributes:
        protocol: Case protocol
        bucket: Bucket value (``due-in-15``, ``due-today``, ``overdue-60``)
    """

    def __init__(self, protocol: str, bucket: str):
        self.protocol = protocol
        self.bucket = bucket
        super().__init__(
            f"Notification already recorded as sent for protocol {protocol} in bucket {bucket}"
        )
