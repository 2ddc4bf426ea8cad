"""Exception types shared by the migration services."""

class MigrationError(Exception):
    """Base class for migration failures."""
    pass

class ConfigurationError(MigrationError):
    """A required setting is missing or invalid. Raised before any component starts."""
    pass

class ConnectivityError(MigrationError):
    """The catalog database or the object store cannot be reached."""
    pass

class StorageNotFoundError(MigrationError):
    """The local source storage row does not exist in the catalog."""
    pass

class TransferError(MigrationError):
    """An object-store call failed after its retry budget was spent."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key

class CatalogWriteError(MigrationError):
    """A catalog statement failed. Aborts the run and rolls back the open block."""
    pass

def safe_error_message(e: Exception, fallback: str = "Migration interrupted") -> str:
    """Extract a meaningful error message from an exception.

    Some exceptions (especially from third-party libraries or cancellation races)
    produce an empty str(e). This helper falls back to the exception class name.
    """
    msg = str(e).strip()
    if not msg:
        msg = f"{type(e).__name__}: {fallback}"
    return msg
