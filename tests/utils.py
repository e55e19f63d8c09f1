# mypy: ignore-errors
"""Fakes and helpers shared by the unit tests."""

import io
import threading
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from s3_uploader import S3ClientProvider
from s3_uploader.streaming import ChunkSubscriber, Subscription

TEST_BUCKET = "test-uploads-bucket"
TEST_REGION = "us-east-1"


class ErrorSimulator:
    """Simulate boto3 error conditions for testing."""

    @staticmethod
    def create_client_error(
        error_code: str,
        message: str = "Test error",
        http_status: int = 400,
        operation_name: str = "TestOperation",
    ) -> ClientError:
        return ClientError(
            error_response={
                "Error": {"Code": error_code, "Message": message},
                "ResponseMetadata": {"HTTPStatusCode": http_status},
            },
            operation_name=operation_name,
        )


class TrackingSource(io.BytesIO):
    """In-memory upload source that counts how often it is closed."""

    def __init__(self, data: bytes = b""):
        super().__init__(data)
        self.close_count = 0

    def close(self) -> None:
        self.close_count += 1
        super().close()


class FailingSource(TrackingSource):
    """Source whose reads fail after ``fail_after`` successful reads."""

    def __init__(self, data: bytes, fail_after: int, error: Exception):
        super().__init__(data)
        self.fail_after = fail_after
        self.error = error
        self.reads = 0

    def read(self, size: int = -1) -> bytes:
        if self.reads >= self.fail_after:
            raise self.error
        self.reads += 1
        return super().read(size)


class BlockingSource(TrackingSource):
    """Source whose read number ``block_on_read`` blocks until ``unblock`` is set."""

    def __init__(self, data: bytes, block_on_read: int):
        super().__init__(data)
        self.block_on_read = block_on_read
        self.reads = 0
        self.blocked = threading.Event()
        self.unblock = threading.Event()

    def read(self, size: int = -1) -> bytes:
        self.reads += 1
        if self.reads == self.block_on_read:
            self.blocked.set()
            self.unblock.wait(timeout=5)
        return super().read(size)


class FakeS3Client:
    """Stands in for a boto3 S3 client.

    ``put_object`` drains the request body the way an HTTP connection does,
    ``read_size`` bytes at a time, and can fail or pause after a number of
    reads. Other calls return canned responses.
    """

    def __init__(
        self,
        read_size: int = 8192,
        fail_after_reads: Optional[int] = None,
        failure: Optional[Exception] = None,
        pause_after_reads: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        self.read_size = read_size
        self.fail_after_reads = fail_after_reads
        self.failure = failure
        self.pause_after_reads = pause_after_reads
        self.response = response or {"ETag": '"d41d8cd98f00b204"', "VersionId": "v1"}

        self.resume = threading.Event()
        self.paused = threading.Event()
        self.finished = threading.Event()

        self.received: List[bytes] = []
        self.put_calls: List[Dict[str, Any]] = []
        self.list_pages: List[Dict[str, Any]] = []
        self.list_calls: List[Dict[str, Any]] = []
        self.error: Optional[BaseException] = None
        self.close_count = 0

    def put_object(self, **kwargs: Any) -> Dict[str, Any]:
        body = kwargs.pop("Body")
        self.put_calls.append(kwargs)
        reads = 0
        try:
            while True:
                data = body.read(self.read_size)
                if not data:
                    break
                self.received.append(data)
                reads += 1
                if self.fail_after_reads is not None and reads == self.fail_after_reads:
                    raise self.failure
                if (
                    self.pause_after_reads is not None
                    and reads == self.pause_after_reads
                ):
                    self.paused.set()
                    self.resume.wait(timeout=5)
            return self.response
        except BaseException as e:
            self.error = e
            raise
        finally:
            self.finished.set()

    def list_objects_v2(self, **kwargs: Any) -> Dict[str, Any]:
        self.list_calls.append(dict(kwargs))
        return self.list_pages[len(self.list_calls) - 1]

    def close(self) -> None:
        self.close_count += 1


class BrokenRequestClient(FakeS3Client):
    """Client whose put_object cannot even be looked up."""

    @property
    def put_object(self):
        raise RuntimeError("request could not be issued")


class FakeClientProvider(S3ClientProvider):
    """Client provider that always hands out the same fake client."""

    def __init__(self, config, client: FakeS3Client):
        super().__init__(config)
        self.client = client

    def open_client(self) -> Any:
        with self._stats_lock:
            self._stats["clients_opened"] += 1
        return self.client


class RecordingSubscriber(ChunkSubscriber):
    """Subscriber that records every signal it receives."""

    def __init__(self) -> None:
        self.subscription: Optional[Subscription] = None
        self.chunks: List[bytes] = []
        self.errors: List[BaseException] = []
        self.completed = 0
        self.events: List[str] = []

    def on_subscribe(self, subscription: Subscription) -> None:
        self.subscription = subscription
        self.events.append("subscribe")

    def on_next(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        self.events.append(f"next:{len(chunk)}")

    def on_error(self, error: BaseException) -> None:
        self.errors.append(error)
        self.events.append("error")

    def on_complete(self) -> None:
        self.completed += 1
        self.events.append("complete")


class ListPublisher:
    """Publisher that emits a fixed list of chunks, optionally ending in an error."""

    def __init__(self, chunks: List[bytes], error: Optional[Exception] = None):
        self.chunks = list(chunks)
        self.error = error

    def subscribe(self, subscriber: ChunkSubscriber) -> None:
        publisher = self

        class _Subscription(Subscription):
            def __init__(self) -> None:
                self.index = 0
                self.cancelled = False
                self.done = False

            def request(self, n: int) -> None:
                for _ in range(n):
                    if self.cancelled or self.done:
                        return
                    if self.index < len(publisher.chunks):
                        chunk = publisher.chunks[self.index]
                        self.index += 1
                        subscriber.on_next(chunk)
                    else:
                        self.done = True
                        if publisher.error is not None:
                            subscriber.on_error(publisher.error)
                        else:
                            subscriber.on_complete()

            def cancel(self) -> None:
                self.cancelled = True

        subscriber.on_subscribe(_Subscription())
