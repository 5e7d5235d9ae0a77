"""Custom exceptions for the tracker package."""


class TrackerError(Exception):
    """Base exception for all tracker errors."""
    pass


class ValidationError(TrackerError):
    """A request carried a malformed path or label."""
    pass


class AlreadyWatchedError(TrackerError):
    """The requested directory is, contains, or is inside an existing watch."""

    def __init__(self, existing: str, requested: str):
        super().__init__(f"watch already exists for {existing}")
        self.existing = existing
        self.requested = requested


class StoreError(TrackerError):
    """Error reading from or writing to the durable store."""
    pass


class SyncFailedError(TrackerError):
    """Watch reconciliation failed too many times in a row."""
    pass
