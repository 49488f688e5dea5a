from core.retry import RetryableError, NonRetryableError


class FuelSyncError(Exception):
    """Base class for all fuel sync and reconciliation domain errors."""

class CatalogFetchError(FuelSyncError, RetryableError):
    """Raised on transient catalog failures (5xx, 429). Retried, then treated as no data for the ID."""

class CatalogRecordNotFoundError(FuelSyncError, NonRetryableError):
    """Raised when the catalog has no record at the requested ID."""

class PayloadDecodeError(FuelSyncError, NonRetryableError):
    """Raised when a catalog payload is neither XML nor JSON nor a structured object."""

class RegistryFeedError(FuelSyncError):
    """Raised when the registry feed cannot be fetched or has an unexpected shape."""

class MissingIdentityError(FuelSyncError, NonRetryableError):
    """Raised when a record lacks make, model or year."""

class SyncAlreadyRunningError(FuelSyncError):
    """Raised when a crawl is requested while another one is running."""

class SyncStartError(FuelSyncError):
    """Raised when the crawl worker cannot be started."""

class InvalidScheduleError(FuelSyncError):
    """Raised for an invalid cron expression or crawl range."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field
