"""Immutable uploader configuration and its validating factories."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

from .exceptions import S3ValidationError
from .validation import get_validator

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class S3UploaderConfig:
    """Validated settings for one bucket.

    Instances should come from :func:`create_config` or
    :func:`load_config_from_env`; constructing one directly skips validation.
    """

    bucket_name: str
    region_name: str = DEFAULT_REGION
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    endpoint_url: Optional[str] = None
    max_pool_connections: int = 50
    max_workers: int = 20
    connect_timeout: int = 60
    read_timeout: int = 60
    max_attempts: int = 3
    retry_mode: str = "adaptive"
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @property
    def has_explicit_credentials(self) -> bool:
        return self.aws_access_key_id is not None

    def __repr__(self) -> str:
        # Credentials stay out of reprs and log lines
        return (
            f"S3UploaderConfig(bucket_name={self.bucket_name!r}, "
            f"region_name={self.region_name!r}, "
            f"endpoint_url={self.endpoint_url!r}, "
            f"explicit_credentials={self.has_explicit_credentials})"
        )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    return value


def create_config(
    bucket_name: str,
    region_name: str = DEFAULT_REGION,
    aws_access_key_id: Optional[str] = None,
    aws_secret_access_key: Optional[str] = None,
    aws_session_token: Optional[str] = None,
    endpoint_url: Optional[str] = None,
    max_pool_connections: int = 50,
    max_workers: int = 20,
    connect_timeout: int = 60,
    read_timeout: int = 60,
    max_attempts: int = 3,
    retry_mode: str = "adaptive",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> S3UploaderConfig:
    """Build an :class:`S3UploaderConfig`, failing fast on invalid settings.

    Args:
        bucket_name: Target bucket. Required and must be a valid S3 bucket name.
        region_name: AWS region the bucket lives in.
        aws_access_key_id: Explicit access key. When omitted the boto3 default
            credential chain (environment, profile, instance role) is used.
        aws_secret_access_key: Secret paired with ``aws_access_key_id``.
        aws_session_token: Optional session token for temporary credentials.
        endpoint_url: Custom endpoint for S3-compatible services.
        max_pool_connections: botocore HTTP connection pool size.
        max_workers: Threads available for blocking S3 calls.
        connect_timeout: Connection timeout in seconds.
        read_timeout: Read timeout in seconds.
        max_attempts: botocore retry attempts.
        retry_mode: botocore retry mode ("legacy", "standard" or "adaptive").
        chunk_size: Bytes read from an upload source per chunk.

    Raises:
        S3ValidationError: If any setting is missing or inconsistent.
    """
    validator = get_validator()
    validator.validate_bucket_and_region(bucket_name, region_name)

    aws_access_key_id = _blank_to_none(aws_access_key_id)
    aws_secret_access_key = _blank_to_none(aws_secret_access_key)
    aws_session_token = _blank_to_none(aws_session_token)
    endpoint_url = _blank_to_none(endpoint_url)

    errors = []
    if (aws_access_key_id is None) != (aws_secret_access_key is None):
        errors.append("Access key and secret key must be supplied together")
    if aws_session_token is not None and aws_access_key_id is None:
        errors.append("Session token requires an access key and secret key")
    if endpoint_url is not None and not endpoint_url.startswith(
        ("http://", "https://")
    ):
        errors.append("Endpoint URL must start with http:// or https://")
    for name, value in (
        ("max_pool_connections", max_pool_connections),
        ("max_workers", max_workers),
        ("connect_timeout", connect_timeout),
        ("read_timeout", read_timeout),
        ("max_attempts", max_attempts),
        ("chunk_size", chunk_size),
    ):
        if value <= 0:
            errors.append(f"{name} must be positive")
    if retry_mode not in ("legacy", "standard", "adaptive"):
        errors.append(f"Unknown retry mode: {retry_mode}")

    if errors:
        raise S3ValidationError(
            message=f"Invalid configuration: {'; '.join(errors)}",
            error_code="InvalidConfiguration",
            operation="create_config",
            context={"bucket_name": bucket_name, "errors": errors},
        )

    config = S3UploaderConfig(
        bucket_name=bucket_name,
        region_name=region_name,
        aws_access_key_id=aws_access_key_id,
        aws_secret_access_key=aws_secret_access_key,
        aws_session_token=aws_session_token,
        endpoint_url=endpoint_url.rstrip("/") if endpoint_url else None,
        max_pool_connections=max_pool_connections,
        max_workers=max_workers,
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        max_attempts=max_attempts,
        retry_mode=retry_mode,
        chunk_size=chunk_size,
    )
    logger.debug(f"Created {config!r}")
    return config


def load_config_from_env(
    env_file: Optional[Union[str, Path]] = None,
) -> S3UploaderConfig:
    """Build a config from environment variables, optionally seeded from a .env file.

    Reads ``S3_BUCKET_NAME``, ``AWS_REGION`` (falling back to
    ``AWS_DEFAULT_REGION``), ``AWS_ACCESS_KEY_ID``, ``AWS_SECRET_ACCESS_KEY``,
    ``AWS_SESSION_TOKEN`` and ``S3_ENDPOINT_URL``. Values already present in the
    environment win over the .env file.
    """
    if env_file is not None:
        if os.path.exists(env_file):
            load_dotenv(env_file)
            logger.info(f"Loaded environment from {env_file}")
        else:
            logger.warning(f"No .env file found at {env_file}")
    else:
        load_dotenv()

    return create_config(
        bucket_name=os.environ.get("S3_BUCKET_NAME", ""),
        region_name=os.environ.get("AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
        or DEFAULT_REGION,
        aws_access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
        aws_session_token=os.environ.get("AWS_SESSION_TOKEN"),
        endpoint_url=os.environ.get("S3_ENDPOINT_URL"),
    )
