"""Custom exceptions for the link maintainer.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every class here aborts a run:
there is no internal retry, the next scheduled run is the retry.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Store errors (1xxx)
    NOTE_STORE_UNAVAILABLE = 1001
    INDEX_STORE_UNAVAILABLE = 1002

    # Query errors (2xxx)
    QUERY_FAILED = 2001

    # External write errors (3xxx)
    REPLACE_BODY_FAILED = 3001
    CREATE_NOTE_FAILED = 3002
    TRASH_NOTE_FAILED = 3003

    # Invariant violations (4xxx)
    AMBIGUITY_BOOKKEEPING = 4001
    LINK_RECORD_SHAPE = 4002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


class LinkMaintainerError(Exception):
    """Base exception for all link maintainer errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.QUERY_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class StoreUnavailableError(LinkMaintainerError):
    """Raised when the note store or the index store cannot be opened."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOTE_STORE_UNAVAILABLE,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if path:
            # Only the last component, full paths stay out of logs
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.path = path
        self.original_error = original_error


class QueryError(LinkMaintainerError):
    """Raised when a (batched) query against a store fails."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if query:
            details["query"] = " ".join(query.split())[:100]
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=ErrorCode.QUERY_FAILED, details=details)
        self.query = query
        self.original_error = original_error


class ExternalWriteError(LinkMaintainerError):
    """Raised when a body replace, note create or note trash fails."""

    def __init__(
        self,
        message: str,
        note_id: Optional[str] = None,
        code: ErrorCode = ErrorCode.REPLACE_BODY_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if note_id:
            details["note_id"] = note_id
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.note_id = note_id
        self.original_error = original_error


class LinkIndexInvariantError(LinkMaintainerError):
    """Raised when index bookkeeping observes a state that cannot happen.

    This is a programming error, not a user-facing condition.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.AMBIGUITY_BOOKKEEPING,
        **context: Any
    ):
        super().__init__(message, code=code, details=dict(context))


class ConfigurationError(LinkMaintainerError):
    """Raised when NOTELINKS_* settings are malformed or out of range."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if original_error:
            details["original_error"] = " ".join(str(original_error).split())[:200]

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
        self.original_error = original_error
