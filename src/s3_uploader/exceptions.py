"""Exception hierarchy and boto3 error translation for S3 operations."""

import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Fields that should be completely masked
SENSITIVE_FIELDS = {
    "aws_access_key_id",
    "aws_secret_access_key",
    "aws_session_token",
    "password",
    "token",
    "secret",
    "credential",
}

# Fields that should be partially masked (show first/last few chars)
PARTIALLY_MASKABLE_FIELDS = {
    "key",
    "object_key",
    "bucket_name",
}


def _sanitize_context_for_logging(context: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize context dictionary for safe logging by masking sensitive information."""
    if not context:
        return {}

    sanitized: Dict[str, Any] = {}

    for key, value in context.items():
        key_lower = key.lower().replace("-", "_").replace(" ", "_")

        if key_lower in SENSITIVE_FIELDS:
            sanitized[key] = "***MASKED***"
        elif (
            key_lower in PARTIALLY_MASKABLE_FIELDS
            and isinstance(value, str)
            and len(value) > 6
        ):
            sanitized[key] = f"{value[:3]}***{value[-3:]}"
        elif isinstance(value, str):
            if _is_sensitive_string_value(value):
                sanitized[key] = "***MASKED***"
            else:
                sanitized[key] = value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_context_for_logging(value)
        else:
            sanitized[key] = value

    return sanitized


def _is_sensitive_string_value(value: str) -> bool:
    """Check if a string value looks like an AWS credential."""
    if len(value) < 16:
        return False

    sensitive_patterns = [
        r"^(AKIA|ASIA)[A-Z0-9]{12,}$",  # AWS access key id
        r"^[A-Za-z0-9/+=]{40}$",  # AWS secret key
    ]

    return any(re.search(pattern, value) for pattern in sensitive_patterns)


class S3UploaderError(Exception):
    """Base exception for S3 uploader operations with context."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.operation = operation
        self.context = context or {}
        self.cause = cause

        sanitized_context = _sanitize_context_for_logging(self.context)
        logger.error(
            f"{self.__class__.__name__}: {message} | Operation: {operation} | "
            f"Code: {error_code} | Context: {sanitized_context}"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "message": str(self),
            "error_code": self.error_code,
            "operation": self.operation,
            "context": _sanitize_context_for_logging(self.context),
        }

    def get_sanitized_context(self) -> Dict[str, Any]:
        """Get sanitized context for safe logging/display."""
        return _sanitize_context_for_logging(self.context)


class S3ConnectionError(S3UploaderError):
    """Network, credential and connection-related errors."""

    pass


class S3PermissionError(S3UploaderError):
    """Access control and permission errors."""

    pass


class S3BucketError(S3UploaderError):
    """Bucket-related errors."""

    pass


class S3ObjectError(S3UploaderError):
    """Object-related operation errors."""

    pass


class S3ObjectNotFoundError(S3UploaderError):
    """Object not found errors."""

    pass


class S3ThrottleError(S3UploaderError):
    """Rate limiting and throttling errors."""

    pass


class S3ValidationError(S3UploaderError):
    """Configuration and input validation errors."""

    pass


class S3UploadCancelledError(S3UploaderError):
    """Upload body was cancelled before the transfer finished."""

    pass


# Error mapping for boto3 ClientError codes
BOTO3_ERROR_MAPPING = {
    "NoSuchBucket": (S3BucketError, "Bucket does not exist"),
    "BucketNotEmpty": (S3BucketError, "Bucket is not empty"),
    "NoSuchKey": (S3ObjectNotFoundError, "Object not found"),
    "404": (S3ObjectNotFoundError, "Object not found"),
    "NotFound": (S3ObjectNotFoundError, "Object not found"),
    "AccessDenied": (S3PermissionError, "Access denied"),
    "AccessControlListNotSupported": (
        S3PermissionError,
        "Bucket does not allow ACLs",
    ),
    "Forbidden": (S3PermissionError, "Operation forbidden"),
    "403": (S3PermissionError, "Operation forbidden"),
    "InvalidAccessKeyId": (S3PermissionError, "Invalid access key"),
    "SignatureDoesNotMatch": (S3PermissionError, "Request signature mismatch"),
    "ExpiredToken": (S3PermissionError, "Session token expired"),
    "InvalidRequest": (S3ValidationError, "Invalid request"),
    "InvalidArgument": (S3ValidationError, "Invalid argument"),
    "EntityTooLarge": (S3ValidationError, "Entity too large"),
    "MetadataTooLarge": (S3ValidationError, "Metadata too large"),
    "Throttling": (S3ThrottleError, "Request throttled"),
    "TooManyRequests": (S3ThrottleError, "Too many requests"),
    "SlowDown": (S3ThrottleError, "Slow down requests"),
    "ServiceUnavailable": (S3ConnectionError, "Service unavailable"),
    "InternalError": (S3ConnectionError, "Internal service error"),
    "RequestTimeout": (S3ConnectionError, "Request timeout"),
    "IncompleteBody": (S3ConnectionError, "Request body incomplete"),
    "InvalidObjectState": (S3ObjectError, "Invalid object state"),
}


def map_boto3_error(error: BaseException, operation: str = "unknown") -> S3UploaderError:
    """Map a boto3/botocore exception to the matching S3UploaderError subclass."""
    from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

    if isinstance(error, S3UploaderError):
        return error

    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "Unknown")
        error_message = error.response.get("Error", {}).get("Message", str(error))

        exception_class, default_message = BOTO3_ERROR_MAPPING.get(
            error_code, (S3UploaderError, "Unknown S3 error")
        )

        return exception_class(
            message=f"{default_message}: {error_message}",
            error_code=error_code,
            operation=operation,
            cause=error,
        )

    elif isinstance(error, NoCredentialsError):
        return S3ConnectionError(
            message="AWS credentials not found or invalid",
            error_code="NoCredentials",
            operation=operation,
            cause=error,
        )

    elif isinstance(error, BotoCoreError):
        return S3ConnectionError(
            message=f"AWS SDK error: {error}",
            error_code="BotoCoreError",
            operation=operation,
            cause=error,
        )

    elif isinstance(error, OSError):
        return S3ObjectError(
            message=f"I/O error: {error}",
            error_code="IOError",
            operation=operation,
            cause=error,
        )

    else:
        return S3UploaderError(
            message=f"Unexpected error: {error}", operation=operation, cause=error
        )
