"""Custom application exceptions."""


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        headers: dict[str, str] | None = None,
    ):
        """Initialize exception with message, status code and optional headers."""
        self.message = message
        self.status_code = status_code
        self.headers = headers
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


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


class SchedulingConflictException(ConflictException):
    """The requested interval overlaps an existing blocking appointment."""

    def __init__(self, message: str = "Doctor is not available at this time slot"):
        """Initialize with 409 status code."""
        super().__init__(message)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class ServiceUnavailableException(AppException):
    """Transient failure; the client may retry later."""

    def __init__(self, message: str = "Service temporarily unavailable", retry_after: int = 1):
        """Initialize with 503 status code and a Retry-After header."""
        super().__init__(
            message,
            status_code=503,
            headers={"Retry-After": str(retry_after)},
        )


class LockNotAcquiredException(ServiceUnavailableException):
    """The booking lock could not be obtained within its retry budget."""

    def __init__(self, key: str):
        """Initialize with the contended lock key."""
        self.key = key
        super().__init__("Schedule is busy, please try again")
