"""Exception taxonomy shared by the store, aggregation and AI layers."""

from typing import Optional


class FinanceError(Exception):
    """Base class for all expected application failures."""


class ValidationError(FinanceError):
    """A required field is missing or invalid. Mapped to HTTP 400."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"{field} is required")


class NotFoundError(FinanceError):
    """A record addressed by id does not exist for the caller."""


class StoreUnavailable(FinanceError):
    """The database could not be reached."""


class InvalidSnapshot(FinanceError):
    """Snapshot totals are not finite numbers."""


class UpstreamError(FinanceError):
    """The text-generation API call failed."""


class EmptyResponse(UpstreamError):
    """The text-generation API answered with blank text."""


class StorageError(FinanceError):
    """Uploading to object storage failed."""
