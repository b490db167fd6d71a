"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class ImmutableRecordException(AppException):
    """Raised when an UPDATE or DELETE targets an append-only table."""

    def __init__(self, table_name: str):
        """Initialize with 409 status code."""
        self.table_name = table_name
        super().__init__(f"{table_name} is append-only: rows cannot be modified or deleted", 409)


class AuditWriteException(AppException):
    """
    Audit entry could not be persisted.

    The enclosing mutation is rolled back. Clients only ever see a generic
    internal error; the underlying cause is kept on ``reason`` for logging.
    """

    def __init__(self, reason: str):
        """Initialize with 500 status code and a generic client message."""
        self.reason = reason
        super().__init__("Internal server error", status_code=500)
