"""
Standardized error response utilities for the Persway API.

Provides consistent error response format across all endpoints:
{
    "error": {
        "message": "User-friendly error message",
        "code": "ERROR_CODE"
    }
}

Usage:
    from persway.utils.errors import error_response, ErrorCode

    return error_response("Audience not found", ErrorCode.NOT_FOUND, 404)
"""
import logging
from enum import Enum
from flask import jsonify
from typing import Optional

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Authentication & Authorization (401, 403)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    SHOP_NOT_INSTALLED = "SHOP_NOT_INSTALLED"

    # Validation Errors (400)
    INVALID_REQUEST = "INVALID_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Not Found (404)
    NOT_FOUND = "NOT_FOUND"
    AUDIENCE_NOT_FOUND = "AUDIENCE_NOT_FOUND"
    PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"

    # Limits (413, 429)
    SIZE_LIMIT_EXCEEDED = "SIZE_LIMIT_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"

    # External Service Errors (502)
    SHOPIFY_ERROR = "SHOPIFY_ERROR"
    METAFIELD_ERROR = "METAFIELD_ERROR"

    # Server Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        message: User-friendly error message
        code: Error code from ErrorCode enum (or a raw code string)
        status_code: HTTP status code
        log_error: Whether to log the error
        details: Optional additional fields returned alongside message/code

    Returns:
        Tuple of (response, status_code) for Flask
    """
    if log_error and status_code >= 500:
        logger.error(f"API Error [{code}]: {message}", extra={"details": details})
    elif log_error and status_code >= 400:
        logger.warning(f"API Error [{code}]: {message}", extra={"details": details})

    error = {
        "message": message,
        "code": code.value if isinstance(code, ErrorCode) else code
    }
    if details:
        error.update(details)

    return jsonify({"error": error}), status_code


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST, details: Optional[dict] = None) -> tuple:
    """400 Bad Request error."""
    return error_response(message, code, 400, log_error=False, details=details)


def unauthorized(message: str = "Authentication required", code: ErrorCode = ErrorCode.AUTH_REQUIRED) -> tuple:
    """401 Unauthorized error."""
    return error_response(message, code, 401, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    """404 Not Found error."""
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    """500 Internal Server Error."""
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, log_error=True, details=details)


def exception_response(exc) -> tuple:
    """Render a PerswayError with its own status code."""
    details = None
    field_errors = getattr(exc, 'field_errors', None)
    if field_errors:
        details = {'field_errors': field_errors}
    retry_after = getattr(exc, 'retry_after_ms', None)
    if retry_after is not None:
        details = {'retry_after_ms': retry_after}
    return error_response(exc.message, exc.code, exc.status_code, details=details)
