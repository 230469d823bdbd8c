# Structured exception hierarchy for the agent state engine

from typing import Dict, Any, Optional
from datetime import datetime, timezone


class StateEngineException(Exception):
    """Base exception for all state engine specific errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None,
                 correlation_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.correlation_id = correlation_id
        self.timestamp = datetime.now(timezone.utc)


class TransientError(StateEngineException):
    """Base class for transient errors that may succeed after an explicit retry"""

    def __init__(self, message: str, retry_count: int = 0, max_retries: int = 5,
                 details: Optional[Dict[str, Any]] = None, correlation_id: Optional[str] = None):
        super().__init__(message, details, correlation_id)
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.retryable = retry_count < max_retries


class PermanentError(StateEngineException):
    """Base class for permanent errors that will not succeed on retry"""
    pass


# Connection Errors
class EngineConnectionError(TransientError):
    """Base class for websocket connection failures"""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url


class NotConnectedError(EngineConnectionError):
    """A frame was sent while the connection was not open"""
    pass


class ConnectionClosedError(EngineConnectionError):
    """The connection closed while a request was still pending"""
    pass


# Request Errors
class RequestTimeoutError(TransientError):
    """No response arrived for a correlated request within the timeout"""

    def __init__(self, message: str, request_id: int, timeout_seconds: float, **kwargs):
        super().__init__(message, **kwargs)
        self.request_id = request_id
        self.timeout_seconds = timeout_seconds


class RequestFailedError(PermanentError):
    """The exchange answered a correlated request with an error"""

    def __init__(self, message: str, request_id: int,
                 response: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.request_id = request_id
        self.response = response or {}


# Data Errors
class MessageValidationError(PermanentError):
    """Inbound frame failed boundary validation - dropped, never retried"""

    def __init__(self, message: str, raw_message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.raw_message = raw_message


class DataShapeError(PermanentError):
    """Exchange payload does not have the expected shape"""

    def __init__(self, message: str, field: str, value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value


def is_retryable_error(error: Exception) -> bool:
    """
    Determine if an error may succeed on an explicit retry

    Returns:
        True if error is transient and retryable, False otherwise
    """
    if isinstance(error, TransientError):
        return error.retryable
    return False


def create_error_context(error: Exception, operation: str,
                         additional_context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Create structured error context for logging

    Args:
        error: The exception that occurred
        operation: The operation that failed
        additional_context: Additional context information

    Returns:
        Structured error context dictionary
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "operation": operation,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "retryable": is_retryable_error(error)
    }

    if isinstance(error, StateEngineException):
        if error.correlation_id:
            context["correlation_id"] = error.correlation_id
        if error.details:
            context["error_details"] = error.details

        if isinstance(error, (RequestTimeoutError, RequestFailedError)):
            context["request_id"] = error.request_id

        if isinstance(error, EngineConnectionError) and error.url:
            context["url"] = error.url

    if additional_context:
        context.update(additional_context)

    return context
