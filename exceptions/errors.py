"""
Custom exception classes for the application.

Connector failures, persistence failures and commit failures propagate as
exceptions. Empty results and partial batch failures are reported as
counts on result models, never raised.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "BATCH_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# CONNECTOR ERRORS
# ===================

class ConnectorError(ExternalServiceError):
    """Source connector request failed or closed early. Always retryable."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="connector",
            message=message,
            details={"retryable": True, **(details or {})}
        )


class ConnectorNotConfiguredError(ExternalServiceError):
    """No API key for the source connector."""

    def __init__(self):
        super().__init__(
            service="connector",
            message="Source connector not configured. Set ANTHROPIC_API_KEY.",
            details={"retryable": False}
        )


class UnsafeUrlError(ValidationError):
    """URL points at a private or non-http address."""

    def __init__(self, url: str):
        super().__init__(
            code="UNSAFE_URL",
            message="URL must be a public http(s) address",
            details={"url": url}
        )


# ===================
# BATCH ERRORS
# ===================

class BatchNotFoundError(NotFoundError):
    """Import batch not found."""

    def __init__(self, batch_id: str):
        super().__init__(
            resource="Import batch",
            identifier=batch_id,
            code="BATCH_NOT_FOUND"
        )


# ===================
# STAGING ERRORS
# ===================

class StagingItemNotFoundError(NotFoundError):
    """Staging item not found."""

    def __init__(self, item_id: str):
        super().__init__(
            resource="Staging item",
            identifier=item_id,
            code="STAGING_ITEM_NOT_FOUND"
        )


class StagingPersistenceError(AppError):
    """A curation mutation could not be persisted. Local state was rolled back."""

    def __init__(self, item_id: str, message: str):
        super().__init__(
            code="STAGING_PERSISTENCE_FAILED",
            message=message,
            status_code=500,
            details={"item_id": item_id, "rolled_back": True}
        )


# ===================
# COMMIT ERRORS
# ===================

class NothingToCommitError(ConflictError):
    """Batch has no pending items."""

    def __init__(self, batch_id: str):
        super().__init__(
            code="NOTHING_TO_COMMIT",
            message="Batch has no pending items to import",
            details={"batch_id": batch_id}
        )


class CommitError(AppError):
    """Commit attempt failed. Batch and staging rows are left for retry."""

    def __init__(self, batch_id: str, message: str, promoted_count: int = 0):
        super().__init__(
            code="COMMIT_FAILED",
            message=message,
            status_code=500,
            details={
                "batch_id": batch_id,
                "promoted_count": promoted_count,
                "retryable": True
            }
        )
