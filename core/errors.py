"""Error taxonomy shared by every store operation.

Callers get a typed failure for every unsuccessful operation. ``retryable``
tells the caller whether repeating the whole logical operation may succeed.
"""

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm.exc import StaleDataError


class StoreError(Exception):
    code = "STORE_ERROR"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(StoreError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str | None = None):
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class DuplicateKeyError(StoreError):
    code = "DUPLICATE_KEY"

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"Duplicate value for field: {field}")
        self.field = field


class InvalidParentError(StoreError):
    code = "INVALID_PARENT"


class InvalidVersionIndexError(StoreError):
    code = "INVALID_VERSION_INDEX"


class InvalidCredentialsError(StoreError):
    code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InconsistentCascadeError(StoreError):
    code = "INCONSISTENT_CASCADE"
    retryable = True


class StoreUnavailableError(StoreError):
    code = "STORE_UNAVAILABLE"
    retryable = True


class StoreTimeoutError(StoreError):
    code = "TIMEOUT"
    retryable = True


class ConcurrentModificationError(StoreError):
    code = "CONCURRENT_MODIFICATION"
    retryable = True


def _duplicate_field(error: sa_exc.IntegrityError) -> str:
    text = str(error.orig).lower()
    for field in ("username", "email"):
        if field in text:
            return field
    return "unknown"


def translate_db_error(error: Exception) -> StoreError:
    """Map a SQLAlchemy/driver exception onto the store taxonomy."""
    if isinstance(error, StoreError):
        return error
    if isinstance(error, StaleDataError):
        return ConcurrentModificationError(f"Document changed concurrently: {error}")
    if isinstance(error, sa_exc.TimeoutError):
        return StoreTimeoutError(f"Store operation timed out: {error}")
    if isinstance(error, sa_exc.IntegrityError):
        if "unique" in str(error.orig).lower() or "duplicate" in str(error.orig).lower():
            return DuplicateKeyError(_duplicate_field(error))
        return ValidationError(f"Integrity constraint violated: {error.orig}")
    if isinstance(error, (sa_exc.OperationalError, sa_exc.DBAPIError)):
        return StoreUnavailableError(f"Database unavailable: {error}")
    return StoreError(str(error) or error.__class__.__name__)
