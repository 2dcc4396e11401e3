"""Custom exceptions for WP Bridge.

This module defines exception classes for handling the error conditions that
can occur while pulling content from the source API and loading it into the
destination store.
"""


class WPMigrationError(Exception):
    """Base exception for all WP Bridge errors."""

    pass


class APIError(WPMigrationError):
    """Base class for API-related errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
        """
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with status code and response."""
        msg = self.message
        if self.status_code:
            msg = f"[{self.status_code}] {msg}"
        if self.response:
            msg = f"{msg}: {self.response}"
        return msg


class AuthenticationError(APIError):
    """Raised when authentication fails (401 Unauthorized)."""

    pass


class AuthorizationError(APIError):
    """Raised when authorization fails (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a collection or resource is not found (404 Not Found)."""

    pass


class RateLimitError(APIError):
    """Raised when API rate limit is exceeded (429 Too Many Requests)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        retry_after: int | None = None,
    ):
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response: API response body
            retry_after: Seconds to wait before retrying (from Retry-After header)
        """
        super().__init__(message, status_code, response)
        self.retry_after = retry_after


class ServerError(APIError):
    """Raised when server returns 5xx error."""

    pass


class NetworkError(WPMigrationError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class DownloadError(WPMigrationError):
    """Raised when a binary asset cannot be transferred to local storage."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ValidationError(WPMigrationError):
    """Raised when data validation fails."""

    pass


class RecordImportError(WPMigrationError):
    """Raised when a single source record cannot be imported.

    Never aborts the batch: the coordinator routes it to the error
    accumulator and carries on with the rest of the page.

    Attributes:
        entity_type: Entity type being imported (users, posts, ...)
        source_id: ID of the record in the source API (None if unreadable)
        message: Human-readable reason
    """

    def __init__(self, entity_type: str, source_id: int | None, message: str):
        self.entity_type = entity_type
        self.source_id = source_id
        self.message = message
        super().__init__(f"{entity_type} {source_id}: {message}")


class DestinationError(WPMigrationError):
    """Raised when a single destination store operation fails."""

    pass


class DestinationUnavailableError(DestinationError):
    """Raised when the destination store cannot be reached at all.

    This is a fatal infrastructure error and aborts the run.
    """

    pass


class StateError(WPMigrationError):
    """Raised when state management errors occur."""

    pass


class CheckpointError(StateError):
    """Raised when checkpoint operations fail."""

    pass


class ConfigurationError(WPMigrationError):
    """Raised when configuration is invalid or missing."""

    pass
