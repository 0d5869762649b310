"""Custom exceptions for BACPAC Bridge.

This module defines exception classes for the error conditions that can occur
while uploading archives, talking to Azure Resource Manager, and running a
batch of import jobs.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bacpac_migration.migration.models import BatchResult


class BacpacMigrationError(Exception):
    """Base exception for all BACPAC migration tool errors."""

    pass


class APIError(BacpacMigrationError):
    """Base class for Azure Resource Manager API errors."""

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


class AuthorizationError(APIError):
    """Raised when the signed-in identity lacks permission (403 Forbidden)."""

    pass


class NotFoundError(APIError):
    """Raised when a resource is not found (404 Not Found)."""

    pass


class ConflictError(APIError):
    """Raised when a resource conflict occurs (409 Conflict).

    Azure SQL answers an import into an existing database name with 409.
    """

    pass


class RateLimitError(APIError):
    """Raised when ARM throttles the caller (429 Too Many Requests)."""

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
    """Raised when ARM returns a 5xx error."""

    pass


class NetworkError(BacpacMigrationError):
    """Raised when network-related errors occur (timeouts, connection failures)."""

    pass


class ConfigurationError(BacpacMigrationError):
    """Raised when configuration is invalid or missing."""

    pass


class UpstreamError(BacpacMigrationError):
    """Raised when a step the whole batch depends on fails.

    Enumeration, sign-in, storage key retrieval and upload failures are not
    recoverable: the run terminates.
    """

    pass


class AuthenticationError(UpstreamError):
    """Raised when Azure sign-in or token acquisition fails."""

    pass


class UploadError(UpstreamError):
    """Raised when the bulk transfer of archives to blob storage fails."""

    def __init__(self, message: str, exit_code: int | None = None):
        """Initialize upload error.

        Args:
            message: Error message
            exit_code: Exit code of the bulk transfer tool, if it ran
        """
        super().__init__(message)
        self.exit_code = exit_code


class SubmissionError(BacpacMigrationError):
    """Raised when an import request for a single archive could not be started."""

    def __init__(self, database_name: str, reason: str):
        self.database_name = database_name
        self.reason = reason
        super().__init__(f"Import of '{database_name}' could not be started: {reason}")


class StatusQueryError(BacpacMigrationError):
    """Raised when the status call for an import operation itself fails."""

    def __init__(self, operation_id: str, reason: str):
        self.operation_id = operation_id
        self.reason = reason
        super().__init__(f"Status of operation {operation_id} unavailable: {reason}")


class BatchFailedError(BacpacMigrationError):
    """Raised once reconciliation finds failed imports or missing databases.

    Attributes:
        result: The final batch result the failure was derived from
        reasons: Human-readable failure reasons, one per failing check
    """

    def __init__(self, result: "BatchResult"):
        self.result = result
        self.reasons = list(result.failure_reasons)
        super().__init__("; ".join(self.reasons) or "Batch failed")
