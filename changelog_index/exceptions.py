"""Application exception hierarchy.

All custom exceptions inherit from ChangelogIndexError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "IDX-1000"
    CONFIGURATION_ERROR = "IDX-1001"
    INVALID_INPUT = "IDX-1002"

    # Source table errors (2xxx)
    SOURCE_UNAVAILABLE = "IDX-2000"
    SOURCE_PARSE_ERROR = "IDX-2001"

    # Embedding errors (3xxx)
    EMBEDDING_UNAVAILABLE = "IDX-3000"
    EMBEDDING_TIMEOUT = "IDX-3001"
    EMBEDDING_MALFORMED = "IDX-3002"

    # Vector store errors (4xxx)
    STORE_UNAVAILABLE = "IDX-4000"
    DIMENSION_MISMATCH = "IDX-4001"
    MALFORMED_VECTOR = "IDX-4002"


class ChangelogIndexError(Exception):
    """Base exception for all changelog index errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(ChangelogIndexError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class InvalidInputError(ChangelogIndexError):
    """Input rejected before reaching any backend (e.g. blank text)."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class SourceUnavailableError(ChangelogIndexError):
    """The source-of-truth changelog table could not be read."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SOURCE_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class EmbeddingUnavailableError(ChangelogIndexError):
    """Embedding backend unreachable, timed out, or returned malformed output."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class VectorStoreError(ChangelogIndexError):
    """Vector store operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORE_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class StoreUnavailableError(VectorStoreError):
    """Persistence backend unreachable."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.STORE_UNAVAILABLE, details)


class DimensionMismatchError(VectorStoreError):
    """Vector length disagrees with the store's established dimension."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.DIMENSION_MISMATCH, details)


class MalformedVectorError(VectorStoreError):
    """Vector contains NaN or infinite components."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.MALFORMED_VECTOR, details)
