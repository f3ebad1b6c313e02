"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # This is your base class - DON'T raise it directly! Always use a specific subclass so callers
    # (the excluded HTTP layer, the CLI, batch loops) can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found.

    HTTP Status: 404
    """

    # Yo, this is for "get by ID" operations that fail - Track abc doesn't exist, Artist xyz gone.
    # entity_type and entity_id are kept separately so log lines stay structured.
    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class BusinessRuleViolation(DomainException):
    """A business rule was violated.

    Raised when an operation violates business logic constraints
    (conflicting operations, invalid input paths).

    HTTP Status: 400
    """

    pass


class OperationInProgressError(BusinessRuleViolation):
    """A structural operation (scan, reorganize) or sync batch is already running.

    HTTP Status: 400

    Example:
        raise OperationInProgressError("A scan is already in progress")
    """

    pass


class InvalidLibraryPathError(BusinessRuleViolation):
    """Library root is missing or not a directory.

    HTTP Status: 400
    """

    def __init__(self, path: Any, reason: str) -> None:
        super().__init__(f"Invalid library path {path}: {reason}")
        self.path = path
        self.reason = reason


class DatabaseError(DomainException):
    """Persistence layer failed (connection, constraint, lock exhaustion).

    HTTP Status: 500
    """

    pass


class StorageError(DomainException):
    """Filesystem operation failed (read, write, move).

    HTTP Status: 500

    Example:
        raise StorageError("Failed to write cover to /music/A/B/cover.jpg: Permission denied")
    """

    pass


class MetadataError(DomainException):
    """Metadata could not be read or fetched.

    Covers tag parsing of local files AND provider search/fetch failures.

    HTTP Status: 502 for provider failures, 422 for unreadable files
    """

    pass


class TagReadError(MetadataError):
    """Audio container could not be parsed."""

    def __init__(self, path: Any, reason: str) -> None:
        super().__init__(f"Failed to read tags from {path}: {reason}")
        self.path = path


class ProviderError(MetadataError):
    """External metadata provider failed after all retries."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ConfigurationError(DomainException):
    """Settings are invalid or the environment can't satisfy them (unwritable DB dir).

    Raised at startup, never during a scan.
    """

    pass


class InternalError(DomainException):
    """Invariant violation inside the core (e.g. non-text path).

    HTTP Status: 500
    """

    pass


# =============================================================================
# Public API - All exceptions that can be imported
# =============================================================================
__all__ = [
    # Base
    "DomainException",
    # Entity exceptions
    "EntityNotFoundException",
    # Business logic (BadRequest)
    "BusinessRuleViolation",
    "OperationInProgressError",
    "InvalidLibraryPathError",
    # Infrastructure-facing
    "DatabaseError",
    "StorageError",
    # Metadata
    "MetadataError",
    "TagReadError",
    "ProviderError",
    # Generic
    "ConfigurationError",
    "InternalError",
]
