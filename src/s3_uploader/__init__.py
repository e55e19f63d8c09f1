"""S3 Uploader.

An asyncio facade over boto3 for a single S3 bucket: uploads with streaming
progress reporting, deletes, renames, canned ACLs and folder-style prefix
operations. Operations return immutable result objects rather than raising
backend errors.
"""

from .client_provider import S3ClientProvider
from .config import S3UploaderConfig, create_config, load_config_from_env
from .exceptions import (
    S3BucketError,
    S3ConnectionError,
    S3ObjectError,
    S3ObjectNotFoundError,
    S3PermissionError,
    S3ThrottleError,
    S3UploadCancelledError,
    S3UploaderError,
    S3ValidationError,
)
from .progress import (
    ByteCounter,
    Completed,
    Failed,
    InProgress,
    UploadProgress,
    on_progress_changed,
)
from .results import FolderResult, OperationResult, UploadResult
from .streaming import (
    ChunkPublisher,
    ChunkSubscriber,
    ProgressRequestBody,
    ProgressSubscriber,
    PublisherReader,
    ReadablePublisher,
    Subscription,
)
from .uploader import S3Uploader

__version__ = "0.1.0"

__all__ = [
    "S3Uploader",
    "S3UploaderConfig",
    "S3ClientProvider",
    "create_config",
    "load_config_from_env",
    "UploadProgress",
    "InProgress",
    "Completed",
    "Failed",
    "ByteCounter",
    "on_progress_changed",
    "UploadResult",
    "OperationResult",
    "FolderResult",
    "ChunkPublisher",
    "ChunkSubscriber",
    "Subscription",
    "ReadablePublisher",
    "ProgressSubscriber",
    "ProgressRequestBody",
    "PublisherReader",
    "S3UploaderError",
    "S3ConnectionError",
    "S3PermissionError",
    "S3BucketError",
    "S3ObjectError",
    "S3ObjectNotFoundError",
    "S3ThrottleError",
    "S3ValidationError",
    "S3UploadCancelledError",
    "__version__",
]
