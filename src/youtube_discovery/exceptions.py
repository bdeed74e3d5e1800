"""Error handling utilities and custom exceptions.

Only quota exhaustion and missing configuration abort a discovery request.
Upstream request failures are raised per call and the caller decides whether
to skip that branch; cache I/O failures never leave the cache layer.
"""
import logging
import traceback
from datetime import datetime
from http import HTTPStatus
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class DiscoveryError(Exception):
    """Base exception for all discovery-specific errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "DISCOVERY_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = int(status_code)
        super().__init__(self.message)


class UpstreamQuotaExhaustedError(DiscoveryError):
    """The upstream daily quota is spent; fatal for the rest of the run."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        reset_at: Optional[datetime] = None,
        details: Optional[Dict] = None
    ):
        self.query = query
        self.reset_at = reset_at
        super().__init__(
            message=message,
            error_code="UPSTREAM_QUOTA_EXHAUSTED",
            details={
                "query": query,
                "reset_at": reset_at.isoformat() if reset_at else None,
                **(details or {})
            },
            status_code=HTTPStatus.TOO_MANY_REQUESTS
        )


class UpstreamRequestError(DiscoveryError):
    """Non-quota HTTP or parse failure from the upstream data source."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        detail: Optional[str] = None,
        details: Optional[Dict] = None
    ):
        self.status = status
        self.detail = detail
        super().__init__(
            message=message,
            error_code="UPSTREAM_REQUEST_FAILED",
            details={"status": status, "detail": detail, **(details or {})},
            status_code=HTTPStatus.BAD_GATEWAY
        )


class CacheIOError(DiscoveryError):
    """Cache storage read/write failure."""

    def __init__(self, message: str, path: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            error_code="CACHE_IO_ERROR",
            details={"path": path, **(details or {})},
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR
        )


class ConfigurationMissingError(DiscoveryError):
    """Unknown competitor, template or missing credential."""

    def __init__(self, message: str, key: Optional[str] = None, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_MISSING",
            details={"key": key, **(details or {})},
            status_code=HTTPStatus.BAD_REQUEST
        )


def build_error_payload(
    exception: Exception,
    include_traceback: bool = False
) -> Dict[str, Any]:
    """
    Build a structured error payload from an exception.

    Args:
        exception: The exception to convert
        include_traceback: Include traceback in payload (dev only)

    Returns:
        Dictionary with status code and error details
    """
    if isinstance(exception, DiscoveryError):
        error = {
            "code": exception.error_code,
            "message": exception.message,
            "details": exception.details
        }
        status_code = exception.status_code
    else:
        error = {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {"type": type(exception).__name__}
        }
        status_code = int(HTTPStatus.INTERNAL_SERVER_ERROR)

    if include_traceback:
        error["traceback"] = traceback.format_exc()

    return {"status_code": status_code, "error": error}


def log_error(
    error: Exception,
    context: Optional[str] = None,
    extra: Optional[Dict] = None
):
    """
    Log error with context and structured data.

    Args:
        error: The exception to log
        context: Context description (e.g., "youtube_search", "l2_cache_read")
        extra: Additional context data
    """
    log_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context,
        **(extra or {})
    }

    if isinstance(error, DiscoveryError):
        log_data["error_code"] = error.error_code
        log_data["error_details"] = error.details

    logger.error(f"Error in {context}: {error}", extra=log_data)
