"""S3Uploader: async facade over boto3 for uploads, deletes, renames, ACLs and folders."""

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import (
    IO,
    Any,
    AsyncIterator,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from .batch_operations import S3BatchOperations
from .client_provider import S3ClientProvider
from .config import S3UploaderConfig
from .exceptions import S3UploaderError, map_boto3_error
from .progress import Completed, Failed, InProgress, UploadProgress
from .results import FolderResult, OperationResult, UploadResult
from .streaming import PublisherReader, ProgressRequestBody, ReadablePublisher
from .validation import get_validator, normalize_folder_path

logger = logging.getLogger(__name__)

ACL_PUBLIC_READ = "public-read"
ACL_PRIVATE = "private"

_UPLOAD_FINISHED = object()


class _UploadScope:
    """Resources owned by one streaming upload, released exactly once.

    :meth:`release` runs on the event loop and never blocks: it cancels the
    body, and closes the client and source itself only when no put-object call
    is in flight. Otherwise the worker thread closes them once the call
    returns.
    """

    def __init__(self, client_provider: S3ClientProvider, source: IO[bytes]):
        self._client_provider = client_provider
        self._source = source
        self.client: Any = None
        self.body: Optional[PublisherReader] = None
        self.request: Optional["asyncio.Future[Any]"] = None
        self._lock = threading.Lock()
        self._in_flight = False
        self._released = False
        self._resources_closed = False

    def open_client(self) -> Any:
        self.client = self._client_provider.open_client()
        return self.client

    def send(self, request: Dict[str, Any]) -> Any:
        """Issue put-object with the scope's body. Runs on a worker thread."""
        with self._lock:
            self._in_flight = True
        try:
            return self.client.put_object(Body=self.body, **request)
        finally:
            with self._lock:
                self._in_flight = False
                close_now = self._released
            if close_now:
                self._close_resources()

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            in_flight = self._in_flight

        if self.body is not None:
            self.body.cancel()

        if self.request is not None:
            if self.request.done():
                # Retrieve so an unconsumed failure is not reported as never retrieved
                if not self.request.cancelled():
                    self.request.exception()
            else:
                self.request.cancel()

        if in_flight:
            logger.debug("Upload still in flight, worker will close client and source")
        else:
            self._close_resources()

    def _close_resources(self) -> None:
        with self._lock:
            if self._resources_closed:
                return
            self._resources_closed = True

        if self.client is not None:
            try:
                self._client_provider.close_client(self.client)
            except Exception as e:
                logger.warning(f"Failed to close S3 client: {e}")

        try:
            self._source.close()
        except Exception as e:
            logger.warning(f"Failed to close upload source: {e}")


class S3Uploader:
    """Uploads to and manages objects in a single S3 bucket.

    Every operation opens its own boto3 client, runs the blocking calls on the
    provider's worker pool and closes the client again. Operations report
    backend failures through their result objects instead of raising.
    """

    def __init__(
        self,
        config: S3UploaderConfig,
        client_provider: Optional[S3ClientProvider] = None,
    ) -> None:
        self.config = config
        self.bucket_name = config.bucket_name
        self.region_name = config.region_name

        self.client_provider = client_provider or S3ClientProvider(config)
        self.batch_operations = S3BatchOperations(
            self.client_provider, self.bucket_name
        )
        self.validator = get_validator()

    async def __aenter__(self) -> "S3Uploader":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.client_provider.close()

    @contextmanager
    def _client(self) -> Iterator[Any]:
        client = self.client_provider.open_client()
        try:
            yield client
        finally:
            self.client_provider.close_client(client)

    @asynccontextmanager
    async def _upload_scope(self, source: IO[bytes]) -> AsyncIterator[_UploadScope]:
        scope = _UploadScope(self.client_provider, source)
        try:
            yield scope
        finally:
            scope.release()

    def _build_put_object_request(
        self,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        content_length: Optional[int] = None,
    ) -> Dict[str, Any]:
        self.validator.validate_object_key(key)
        self.validator.validate_metadata(metadata)

        request: Dict[str, Any] = {"Bucket": self.bucket_name, "Key": key}
        if content_type:
            request["ContentType"] = content_type
        if metadata:
            request["Metadata"] = dict(metadata)
        if content_length is not None:
            request["ContentLength"] = content_length
        return request

    def _operation_failed(self, operation: str, error: Exception) -> str:
        # The mapped error logs itself at ERROR when constructed
        mapped_error = map_boto3_error(error, operation)
        logger.debug(f"{operation} failed: {mapped_error}")
        return str(mapped_error)

    # Upload operations

    async def upload_with_progress(
        self,
        source: IO[bytes],
        content_length: int,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> AsyncIterator[UploadProgress]:
        """Stream ``source`` to ``key``, yielding progress as the transport reads it.

        Yields zero or more :class:`InProgress` values in increasing byte order,
        then exactly one :class:`Completed` or :class:`Failed`. Source and
        backend errors arrive as ``Failed`` and are never raised. The client
        and ``source`` are closed exactly once when the sequence ends, is
        closed early, or the consuming task is cancelled. If a source read is
        still in flight at that point, they are closed as soon as it returns.

        Args:
            source: Readable binary stream. It is read lazily in chunks.
            content_length: Number of bytes to send. Must be supplied; the
                source size is not looked up.
            key: Destination object key.
            content_type: Optional Content-Type for the object.
            metadata: Optional user metadata.
        """
        loop = asyncio.get_running_loop()
        updates: "asyncio.Queue[Any]" = asyncio.Queue()
        start_time = time.time()

        def on_progress(bytes_written: int, total_bytes: int) -> None:
            # Runs on the worker thread reading the body
            loop.call_soon_threadsafe(
                updates.put_nowait, InProgress(bytes_written, total_bytes)
            )

        async with self._upload_scope(source) as scope:
            try:
                request = self._build_put_object_request(
                    key, content_type, metadata, content_length=content_length
                )
                publisher = ProgressRequestBody(
                    ReadablePublisher(source, content_length, self.config.chunk_size),
                    content_length,
                    on_progress,
                )
                scope.body = PublisherReader(publisher, content_length)
                scope.open_client()
                scope.request = asyncio.ensure_future(
                    self.client_provider.execute_async(scope.send, request)
                )
                scope.request.add_done_callback(
                    lambda _: updates.put_nowait(_UPLOAD_FINISHED)
                )
            except Exception as e:
                self._operation_failed("upload_with_progress", e)
                yield Failed(e)
                return

            while True:
                update = await updates.get()
                if update is _UPLOAD_FINISHED:
                    break
                yield update

            try:
                response = scope.request.result()
            except Exception as e:
                self._operation_failed("upload_with_progress", e)
                yield Failed(e)
                return

            logger.info(
                f"Uploaded {content_length} bytes to {key} in "
                f"{time.time() - start_time:.2f}s"
            )
            yield Completed(
                entity_tag=response.get("ETag"),
                version_id=response.get("VersionId"),
            )

    async def upload_file(
        self,
        file_path: Union[str, Path],
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> UploadResult:
        """Upload a local file with a single put-object call."""
        try:
            request = self._build_put_object_request(key, content_type, metadata)

            def _put_file(client: Any) -> Any:
                with open(file_path, "rb") as body:
                    return client.put_object(Body=body, **request)

            with self._client() as client:
                response = await self.client_provider.execute_async(_put_file, client)

            logger.info(f"Uploaded file {file_path} to {key}")
            return UploadResult(
                success=True,
                entity_tag=response.get("ETag"),
                version_id=response.get("VersionId"),
            )
        except Exception as e:
            message = self._operation_failed("upload_file", e)
            return UploadResult(success=False, message=message, error=e)

    async def upload_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> UploadResult:
        try:
            request = self._build_put_object_request(key, content_type, metadata)

            with self._client() as client:
                response = await self.client_provider.execute_async(
                    client.put_object, Body=data, **request
                )

            logger.info(f"Uploaded {len(data)} bytes to {key}")
            return UploadResult(
                success=True,
                entity_tag=response.get("ETag"),
                version_id=response.get("VersionId"),
            )
        except Exception as e:
            message = self._operation_failed("upload_bytes", e)
            return UploadResult(success=False, message=message, error=e)

    async def upload_text(
        self, text: str, key: str, content_type: str = "text/plain"
    ) -> UploadResult:
        return await self.upload_bytes(text.encode("utf-8"), key, content_type)

    # Delete operations

    async def delete_object(self, key: str) -> OperationResult:
        try:
            self.validator.validate_object_key(key)

            with self._client() as client:
                await self.client_provider.execute_async(
                    client.delete_object, Bucket=self.bucket_name, Key=key
                )

            logger.info(f"Deleted object {key}")
            return OperationResult(
                success=True, message=f"Object '{key}' deleted successfully"
            )
        except Exception as e:
            message = self._operation_failed("delete_object", e)
            return OperationResult(success=False, message=message, error=e)

    async def delete_objects(self, keys: Sequence[str]) -> FolderResult:
        """Delete several objects. Keys S3 refuses to delete make the result fail."""
        try:
            for key in keys:
                self.validator.validate_object_key(key)

            with self._client() as client:
                results = await self.batch_operations.batch_delete(client, keys)

            return self._deletion_result(results)
        except Exception as e:
            message = self._operation_failed("delete_objects", e)
            return FolderResult(success=False, message=message, error=e)

    def _deletion_result(self, results: Dict[str, List[Any]]) -> FolderResult:
        deleted = tuple(results["deleted"])
        errors = results["errors"]
        if errors:
            failed_keys = ", ".join(error["key"] for error in errors)
            return FolderResult(
                success=False,
                deleted_objects=deleted,
                message=f"Failed to delete {len(errors)} objects: {failed_keys}",
            )

        logger.info(f"Deleted {len(deleted)} objects from {self.bucket_name}")
        return FolderResult(success=True, deleted_objects=deleted)

    # Rename/move operations

    async def rename_object(self, old_key: str, new_key: str) -> OperationResult:
        """Copy ``old_key`` to ``new_key`` and delete the original."""
        try:
            self.validator.validate_object_key(old_key)
            self.validator.validate_object_key(new_key)

            with self._client() as client:
                await self.client_provider.execute_async(
                    client.copy_object,
                    Bucket=self.bucket_name,
                    Key=new_key,
                    CopySource={"Bucket": self.bucket_name, "Key": old_key},
                )
                await self.client_provider.execute_async(
                    client.delete_object, Bucket=self.bucket_name, Key=old_key
                )

            logger.info(f"Renamed {old_key} to {new_key}")
            return OperationResult(
                success=True,
                message=f"Object renamed from '{old_key}' to '{new_key}'",
            )
        except Exception as e:
            message = self._operation_failed("rename_object", e)
            return OperationResult(success=False, message=message, error=e)

    async def move_object(self, source_key: str, destination_key: str) -> OperationResult:
        return await self.rename_object(source_key, destination_key)

    # ACL operations

    async def _put_canned_acl(self, key: str, acl: str, label: str) -> OperationResult:
        try:
            self.validator.validate_object_key(key)

            with self._client() as client:
                await self.client_provider.execute_async(
                    client.put_object_acl, Bucket=self.bucket_name, Key=key, ACL=acl
                )

            logger.info(f"Set ACL {acl} on {key}")
            return OperationResult(success=True, message=f"Object '{key}' is now {label}")
        except Exception as e:
            message = self._operation_failed(f"make_{label}", e)
            return OperationResult(success=False, message=message, error=e)

    async def make_public(self, key: str) -> OperationResult:
        return await self._put_canned_acl(key, ACL_PUBLIC_READ, "public")

    async def make_private(self, key: str) -> OperationResult:
        return await self._put_canned_acl(key, ACL_PRIVATE, "private")

    async def get_acl(self, key: str) -> AsyncIterator[Dict[str, Any]]:
        """Yield the object's ACL grants.

        Raises:
            S3UploaderError: mapped from the backend error.
        """
        try:
            self.validator.validate_object_key(key)
            with self._client() as client:
                response = await self.client_provider.execute_async(
                    client.get_object_acl, Bucket=self.bucket_name, Key=key
                )
        except S3UploaderError:
            raise
        except Exception as e:
            raise map_boto3_error(e, "get_acl") from e

        for grant in response.get("Grants", []):
            yield grant

    async def make_public_all_in_folder(self, folder_path: str) -> OperationResult:
        normalized_path = normalize_folder_path(folder_path)
        try:
            keys = [obj["Key"] async for obj in self.list_folder(normalized_path)]

            if not keys:
                return OperationResult(
                    success=True, message="No objects found in folder"
                )

            with self._client() as client:
                results = await self.batch_operations.batch_put_acl(
                    client, keys, ACL_PUBLIC_READ
                )

            successful = len(results["updated"])
            return OperationResult(
                success=successful == len(keys),
                message=f"Made {successful}/{len(keys)} objects public",
            )
        except Exception as e:
            message = self._operation_failed("make_public_all_in_folder", e)
            return OperationResult(success=False, message=message, error=e)

    # Folder operations

    async def create_folder(self, folder_path: str) -> OperationResult:
        """Create a zero-byte marker object whose key ends in ``/``."""
        normalized_path = normalize_folder_path(folder_path)
        try:
            request = self._build_put_object_request(normalized_path)

            with self._client() as client:
                await self.client_provider.execute_async(
                    client.put_object, Body=b"", **request
                )

            logger.info(f"Created folder {normalized_path}")
            return OperationResult(
                success=True,
                message=f"Folder '{normalized_path}' created successfully",
            )
        except Exception as e:
            message = self._operation_failed("create_folder", e)
            return OperationResult(success=False, message=message, error=e)

    async def delete_folder(self, folder_path: str) -> FolderResult:
        """Delete every object under the folder prefix, including the marker."""
        normalized_path = normalize_folder_path(folder_path)
        try:
            keys = [obj["Key"] async for obj in self.list_folder(normalized_path)]

            if not keys:
                return FolderResult(success=True)

            with self._client() as client:
                results = await self.batch_operations.batch_delete(client, keys)

            return self._deletion_result(results)
        except Exception as e:
            message = self._operation_failed("delete_folder", e)
            return FolderResult(success=False, message=message, error=e)

    async def list_folder(self, folder_path: str) -> AsyncIterator[Dict[str, Any]]:
        """Yield every object summary under the folder prefix, page by page.

        Raises:
            S3UploaderError: mapped from the backend error.
        """
        normalized_path = normalize_folder_path(folder_path)
        request: Dict[str, Any] = {
            "Bucket": self.bucket_name,
            "Prefix": normalized_path,
        }

        try:
            with self._client() as client:
                while True:
                    response = await self.client_provider.execute_async(
                        client.list_objects_v2, **request
                    )
                    for obj in response.get("Contents", []):
                        yield obj

                    if not response.get("IsTruncated"):
                        break
                    request["ContinuationToken"] = response["NextContinuationToken"]
        except S3UploaderError:
            raise
        except Exception as e:
            raise map_boto3_error(e, "list_folder") from e

    # Utility operations

    async def object_exists(self, key: str) -> bool:
        try:
            self.validator.validate_object_key(key)
            with self._client() as client:
                await self.client_provider.execute_async(
                    client.head_object, Bucket=self.bucket_name, Key=key
                )
            return True
        except Exception as e:
            logger.debug(f"Object {key} not available: {e}")
            return False

    def get_object_url(self, key: str) -> str:
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url}/{self.bucket_name}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region_name}.amazonaws.com/{key}"

    def get_public_object_url(self, key: str) -> str:
        return self.get_object_url(key)
