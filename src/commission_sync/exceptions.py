"""Domain-specific exceptions for commission_sync.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from CommissionSyncError for easy catching.
"""

from __future__ import annotations


class CommissionSyncError(Exception):
    """Base exception for all commission_sync errors.

    Users can catch this exception to handle any failure raised by the
    reconciliation pipeline.
    """

    pass


class ConfigError(CommissionSyncError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - The Square access token is missing
    - Invalid configuration values are provided
    - The rules or rates files cannot be loaded or parsed
    """

    pass


class DataQualityError(CommissionSyncError):
    """Raised when a persisted table does not have the expected shape.

    Bad numbers inside payloads never raise this; they are normalised to 0.
    """

    pass


class ETLError(CommissionSyncError):
    """Raised when a stage of the reconciliation run fails."""

    pass


class ExtractionError(ETLError):
    """Raised when data extraction from the source system fails."""

    pass


class RemoteError(ExtractionError):
    """Raised when the remote ledger answers with a non-2xx status.

    Attributes:
        status: HTTP status code returned by the server.
        body: Response body (truncated to 2000 characters).
        method: HTTP method of the failed call.
        url: URL of the failed call.
    """

    def __init__(self, status: int, body: str, method: str = "", url: str = "") -> None:
        self.status = status
        self.body = (body or "")[:2000]
        self.method = method
        self.url = url
        super().__init__(f"{method} {url} failed ({status}): {self.body[:400]}")


class SinkError(ETLError):
    """Raised when the output table cannot be read or written."""

    pass
