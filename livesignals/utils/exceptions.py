"""
LiveSignals Custom Exceptions
=============================

Exception hierarchy with error codes, structured context and user-facing
messages. Each subclass declares its default code, message and
recoverability; callers override any of them per raise.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"

    # Upstream fetch errors (F001-F099)
    UPSTREAM_TRANSIENT = "F001"
    UPSTREAM_TERMINAL = "F002"
    UPSTREAM_NETWORK_ERROR = "F003"
    RELAY_UNAVAILABLE = "F005"

    # AI processing errors (A001-A099)
    AI_INVALID_RESPONSE = "A002"
    AI_PROCESSING_ERROR = "A003"
    AI_MODELS_EXHAUSTED = "A004"

    # Validation errors (V001-V099)
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_UNTRUSTED_HOST = "V003"

    # Storage errors (S001-S099)
    STORAGE_READ_ERROR = "S001"
    STORAGE_WRITE_ERROR = "S002"


class LiveSignalsError(Exception):
    """Base exception for all LiveSignals errors."""

    default_code: Optional[ErrorCode] = None
    default_user_message: Optional[str] = None
    default_recoverable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: Optional[bool] = None,
    ):
        """Initialize LiveSignals error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code (class default when omitted)
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying later may succeed
        """
        super().__init__(message)
        self.error_code = error_code or self.default_code
        self.context = dict(context or {})
        self.user_message = user_message or self.default_user_message or message
        self.recoverable = self.default_recoverable if recoverable is None else recoverable

    def _add_context(self, **values: Any) -> None:
        self.context.update({k: v for k, v in values.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(LiveSignalsError):
    """Invalid or unloadable settings."""

    default_code = ErrorCode.CONFIG_INVALID

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        kwargs.setdefault("user_message", f"Configuration error: {message}")
        super().__init__(message, **kwargs)
        self._add_context(config_key=config_key)


class UpstreamError(LiveSignalsError):
    """Upstream (feed, GitHub, relay) request errors.

    ``recoverable`` separates transient failures (network, 5xx, 429) that
    were retried until the attempt cap from terminal ones that never are.
    """

    default_code = ErrorCode.UPSTREAM_TRANSIENT
    default_user_message = "Upstream source unavailable"
    default_recoverable = True

    def __init__(self, message: str, url: Optional[str] = None,
                 status: Optional[int] = None, **kwargs):
        """Initialize upstream error.

        Args:
            message: Error message
            url: Upstream URL that failed
            status: Last HTTP status seen, if any
            **kwargs: Additional arguments for LiveSignalsError
        """
        super().__init__(message, **kwargs)
        self.url = url
        self.status = status
        self._add_context(url=url, status=status)


class ValidationError(LiveSignalsError):
    """Input validation errors raised at the request boundary."""

    default_code = ErrorCode.VALIDATION_INVALID_FORMAT

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        kwargs.setdefault("user_message", f"Invalid {field_name or 'input'}: {message}")
        super().__init__(message, **kwargs)
        self.field_name = field_name
        self._add_context(field_name=field_name)


class AIError(LiveSignalsError):
    """Summary provider and inference binding errors."""

    default_code = ErrorCode.AI_PROCESSING_ERROR
    default_user_message = "AI processing temporarily unavailable"
    default_recoverable = True

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.provider = provider
        self._add_context(ai_provider=provider)


class StorageError(LiveSignalsError):
    """Key-value store read/write errors."""

    default_code = ErrorCode.STORAGE_WRITE_ERROR
    default_user_message = "Cache storage unavailable"
    default_recoverable = True

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.key = key
        self._add_context(key=key)


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> LiveSignalsError:
    """Convert any exception to a LiveSignals exception and log it.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        The original exception when it already is a LiveSignalsError,
        otherwise a categorized wrapper
    """
    if isinstance(exception, LiveSignalsError):
        error = exception
    else:
        context = {
            **(context or {}),
            "operation": operation,
            "original_exception_type": type(exception).__name__,
        }
        if isinstance(exception, (ConnectionError, TimeoutError)):
            error = UpstreamError(
                f"Network error during {operation}: {exception}",
                error_code=ErrorCode.UPSTREAM_NETWORK_ERROR,
                context=context,
                user_message="Network connection failed",
            )
        else:
            error = LiveSignalsError(
                f"Unexpected error during {operation}: {exception}",
                context=context,
                user_message="An unexpected error occurred",
                recoverable=True,
            )

    logger.warning(f"Operation '{operation}' failed: {error}", extra={"error": error.to_dict()})
    return error


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, LiveSignalsError):
        return exception.user_message

    return "An unexpected error occurred. Please try again later."
