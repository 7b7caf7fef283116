"""
Base Exception Class

This module contains ONLY the base exception class that all other exceptions inherit from.
All specialized exceptions are in their respective themed modules.

Author: System Architect
Date: 2025-12-08
"""

from typing import Any


class StockSyncError(Exception):
    """
    Base exception for all stock-sync worker errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Job ID correlation
    - Structured error logging

    Attributes:
        message: Error message
        job_id: ID of the job being processed (if available)
        details: Additional error details (dict)

    Example:
        raise UpstreamServerError(
            "ERP returned 503",
            job_id="stock-sync:42",
            details={"integration": "erp-stock", "status_code": 503}
        )
    """

    def __init__(
        self, message: str, job_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.job_id = job_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, job_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "job_id": self.job_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "StockSyncError":
        """Add a suggestion to help operators fix the error."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "StockSyncError":
        """Add additional context to the error details."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        """
        Return detailed string representation for debugging.

        Example:
            >>> error = LockUnavailableError("busy", job_id="j-1", details={"key": "store-1"})
            >>> repr(error)
            "LockUnavailableError(message='busy', job_id='j-1', details={'key': 'store-1'})"
        """
        details_str = f", details={self.details}" if self.details else ""
        job_id_str = f", job_id='{self.job_id}'" if self.job_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{job_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        job_id: str | None = None,
        **details
    ) -> "StockSyncError":
        """
        Create an error of this class from another exception.

        Useful for wrapping third-party exceptions with additional context.

        Example:
            >>> try:
            ...     await redis.ping()
            ... except redis.ConnectionError as e:
            ...     raise CacheConnectionError.from_exception(e, url="redis://...") from e
        """
        error_message = message or str(exc)
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, job_id=job_id, details=error_details)


# Configuration exception (kept here as it's fundamental)
class ConfigurationError(StockSyncError):
    """Raised when configuration is invalid or missing."""
    pass
