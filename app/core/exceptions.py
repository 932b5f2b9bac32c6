"""Application and table lifecycle exceptions."""


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


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request"):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400)


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


class NotAuthenticated(UnauthorizedException):
    """Raised when an operation requires a signed-in user."""

    def __init__(self, message: str = "You must be logged in to do this"):
        """Initialize with 401 status code."""
        super().__init__(message)


class AlreadyInTable(ConflictException):
    """Raised when a user with a current table tries to create or join another."""

    def __init__(
        self,
        message: str = "You are already part of another table. Leave that table first.",
    ):
        """Initialize with 409 status code."""
        super().__init__(message)


class TableNotFound(NotFoundException):
    """Raised when a table document no longer exists."""

    def __init__(self, message: str = "Table no longer exists"):
        """Initialize with 404 status code."""
        super().__init__(message)


class TableInactive(ConflictException):
    """Raised when a table has already been ended."""

    def __init__(self, message: str = "This table is no longer active"):
        """Initialize with 409 status code."""
        super().__init__(message)


class TableFull(ConflictException):
    """Raised when a table has no free seats."""

    def __init__(self, message: str = "Table is full"):
        """Initialize with 409 status code."""
        super().__init__(message)


class MissingLocationInfo(BadRequestException):
    """Raised when a table reference carries no location id."""

    def __init__(self, message: str = "Missing location information for this table"):
        """Initialize with 400 status code."""
        super().__init__(message)
