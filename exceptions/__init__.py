"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Connector
    ConnectorError,
    ConnectorNotConfiguredError,
    UnsafeUrlError,

    # Batches
    BatchNotFoundError,

    # Staging
    StagingItemNotFoundError,
    StagingPersistenceError,

    # Commit
    NothingToCommitError,
    CommitError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Connector
    "ConnectorError",
    "ConnectorNotConfiguredError",
    "UnsafeUrlError",

    # Batches
    "BatchNotFoundError",

    # Staging
    "StagingItemNotFoundError",
    "StagingPersistenceError",

    # Commit
    "NothingToCommitError",
    "CommitError",
]
