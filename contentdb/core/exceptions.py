"""
Custom Exceptions - Content database error classes.

This module defines a hierarchy of exceptions for clean error handling:
- Each exception carries an error code and optional details
- Structural errors (schema, unknown collection) surface immediately
- Per-record ValidationErrors are collected into ingestion reports
- Storage failures are wrapped in BackendIOError
"""
from typing import Optional


class ContentDBException(Exception):
    """
    Base exception for all contentdb errors.

    Subclass this for specific error types.
    """
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to error report dict."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(ContentDBException):
    """Raised when settings or store configuration are invalid."""
    error_code = "configuration_error"


class InvalidSchemaError(ContentDBException):
    """Raised when a collection definition cannot be registered."""
    error_code = "invalid_schema"

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message, details=f"collection={collection}" if collection else None)
        self.collection = collection


class DuplicateCollectionError(ContentDBException):
    """Raised when a collection name is registered twice."""
    error_code = "duplicate_collection"

    def __init__(self, name: str):
        super().__init__(
            message=f"Collection already registered: {name}",
            details=f"collection={name}"
        )
        self.name = name


class UnknownCollectionError(ContentDBException):
    """Raised when a collection name was never registered."""
    error_code = "unknown_collection"

    def __init__(self, name: str):
        super().__init__(
            message=f"Unknown collection: {name}",
            details=f"collection={name}"
        )
        self.name = name


class SourceNotFoundError(ContentDBException):
    """Raised when a collection's source directory does not exist."""
    error_code = "source_not_found"

    def __init__(self, path: str, collection: Optional[str] = None):
        super().__init__(
            message=f"Source directory not found: {path}",
            details=f"collection={collection}" if collection else None
        )
        self.path = path
        self.collection = collection


class ValidationError(ContentDBException):
    """
    Raised when a single source file fails schema validation.

    The ingestion pipeline collects these into a report instead of
    aborting the run.
    """
    error_code = "validation_error"

    def __init__(self, message: str, source_path: str, field: Optional[str] = None):
        details = f"source={source_path}"
        if field:
            details += f", field={field}"
        super().__init__(message, details=details)
        self.source_path = source_path
        self.field = field


class ParseError(ContentDBException):
    """Raised by a markup parser when a source file cannot be parsed."""
    error_code = "parse_error"

    def __init__(self, message: str, source_path: str):
        super().__init__(message, details=f"source={source_path}")
        self.source_path = source_path


class NotFoundError(ContentDBException):
    """Raised when a slug is absent from a collection's active generation."""
    error_code = "not_found"

    def __init__(self, collection: str, slug: str):
        super().__init__(
            message=f"Document '{slug}' not found in collection '{collection}'",
            details=f"collection={collection}, slug={slug}"
        )
        self.collection = collection
        self.slug = slug


class BackendIOError(ContentDBException):
    """Raised when the storage backend fails to read or write."""
    error_code = "backend_io_error"

    def __init__(self, message: str = "Storage operation failed", details: Optional[str] = None):
        super().__init__(message, details=details)


class RebuildCancelled(ContentDBException):
    """Raised inside a rebuild when its cancellation token fires before the swap."""
    error_code = "rebuild_cancelled"

    def __init__(self, collection: str):
        super().__init__(
            message=f"Rebuild of '{collection}' cancelled before commit",
            details=f"collection={collection}"
        )
        self.collection = collection
