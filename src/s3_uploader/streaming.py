"""Chunk publishers and subscribers for streaming upload bodies.

The upload body is a small publish/subscribe pipeline::

    ReadablePublisher -> ProgressSubscriber -> PublisherReader -> botocore

``ReadablePublisher`` reads the caller's source on demand, ``ProgressSubscriber``
counts every chunk and reports progress before passing it on, and
``PublisherReader`` is the file-like object botocore pulls the request body
from. Demand flows the other way: each read on ``PublisherReader`` requests one
chunk through the subscription, which the decorator passes through untouched.
"""

import io
import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import IO, Deque, Optional

from .exceptions import S3ObjectError, S3UploadCancelledError, S3ValidationError
from .progress import ByteCounter, ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class Subscription(ABC):
    """Flow-control handle given to a subscriber."""

    @abstractmethod
    def request(self, n: int) -> None:
        """Ask the publisher for up to ``n`` more chunks."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop delivery. No signal follows a cancel."""


class ChunkSubscriber(ABC):
    """Receives the signals of one chunk stream.

    A stream is ``on_subscribe`` followed by any number of ``on_next`` calls and
    at most one of ``on_error`` or ``on_complete``.
    """

    @abstractmethod
    def on_subscribe(self, subscription: Subscription) -> None: ...

    @abstractmethod
    def on_next(self, chunk: bytes) -> None: ...

    @abstractmethod
    def on_error(self, error: BaseException) -> None: ...

    @abstractmethod
    def on_complete(self) -> None: ...


class ChunkPublisher(ABC):
    @abstractmethod
    def subscribe(self, subscriber: ChunkSubscriber) -> None: ...


class _ReadableSubscription(Subscription):
    def __init__(self, publisher: "ReadablePublisher", subscriber: ChunkSubscriber):
        self._publisher = publisher
        self._subscriber = subscriber
        self._delivered = 0
        self._done = False

    def request(self, n: int) -> None:
        if self._done:
            return
        if n <= 0:
            self._done = True
            self._subscriber.on_error(
                ValueError(f"Demand must be positive, got {n}")
            )
            return

        publisher = self._publisher
        for _ in range(n):
            if self._done:
                return

            remaining = publisher.content_length - self._delivered
            if remaining <= 0:
                self._finish()
                return

            try:
                chunk = publisher.source.read(min(publisher.chunk_size, remaining))
            except Exception as e:
                self._fail(e)
                return

            # Cancelled while the read was in flight
            if self._done:
                return

            if not chunk:
                self._fail(
                    S3ObjectError(
                        message=(
                            f"Source ended after {self._delivered} of "
                            f"{publisher.content_length} declared bytes"
                        ),
                        error_code="IncompleteSource",
                        operation="read_source",
                        context={
                            "bytes_read": self._delivered,
                            "content_length": publisher.content_length,
                        },
                    )
                )
                return

            self._delivered += len(chunk)
            self._subscriber.on_next(bytes(chunk))

    def cancel(self) -> None:
        self._done = True

    def _finish(self) -> None:
        self._done = True
        self._subscriber.on_complete()

    def _fail(self, error: BaseException) -> None:
        self._done = True
        self._subscriber.on_error(error)


class ReadablePublisher(ChunkPublisher):
    """Publishes a readable binary source as chunks of at most ``chunk_size`` bytes.

    Exactly ``content_length`` bytes are published; the source is read lazily as
    demand arrives and is never read past the declared length. A source that
    runs dry early ends the stream with an ``IncompleteSource`` error.
    """

    def __init__(
        self,
        source: IO[bytes],
        content_length: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if content_length < 0:
            raise S3ValidationError(
                message=f"Content length must be non-negative: {content_length}",
                error_code="InvalidContentLength",
            )
        if chunk_size <= 0:
            raise S3ValidationError(
                message=f"Chunk size must be positive: {chunk_size}",
                error_code="InvalidChunkSize",
            )
        self.source = source
        self.content_length = content_length
        self.chunk_size = chunk_size
        self._subscribed = False

    def subscribe(self, subscriber: ChunkSubscriber) -> None:
        if self._subscribed:
            raise S3ValidationError(
                message="ReadablePublisher supports a single subscriber",
                error_code="AlreadySubscribed",
            )
        self._subscribed = True
        subscriber.on_subscribe(_ReadableSubscription(self, subscriber))


class ProgressSubscriber(ChunkSubscriber):
    """Counts each chunk and reports progress before forwarding it to ``delegate``.

    The subscription, errors and completion pass through unchanged. If
    ``on_progress`` raises, the exception propagates to whoever requested the
    chunk and the chunk is not forwarded.
    """

    def __init__(
        self,
        delegate: ChunkSubscriber,
        counter: ByteCounter,
        on_progress: ProgressCallback,
    ):
        self._delegate = delegate
        self._counter = counter
        self._on_progress = on_progress

    @property
    def counter(self) -> ByteCounter:
        return self._counter

    def on_subscribe(self, subscription: Subscription) -> None:
        self._delegate.on_subscribe(subscription)

    def on_next(self, chunk: bytes) -> None:
        bytes_written = self._counter.observe(len(chunk))
        self._on_progress(bytes_written, self._counter.total_bytes)
        self._delegate.on_next(chunk)

    def on_error(self, error: BaseException) -> None:
        self._delegate.on_error(error)

    def on_complete(self) -> None:
        self._delegate.on_complete()


class ProgressRequestBody(ChunkPublisher):
    """Publisher wrapper that puts a ProgressSubscriber in front of every subscriber."""

    def __init__(
        self,
        delegate: ChunkPublisher,
        content_length: int,
        on_progress: ProgressCallback,
    ):
        self._delegate = delegate
        self.content_length = content_length
        self._on_progress = on_progress

    def subscribe(self, subscriber: ChunkSubscriber) -> None:
        self._delegate.subscribe(
            ProgressSubscriber(
                subscriber, ByteCounter(self.content_length), self._on_progress
            )
        )


class _ChunkSink(ChunkSubscriber):
    """Buffers delivered chunks for PublisherReader."""

    def __init__(self) -> None:
        self.condition = threading.Condition()
        self.subscription: Optional[Subscription] = None
        self.chunks: Deque[bytes] = deque()
        self.pending = False
        self.finished = False
        self.error: Optional[BaseException] = None

    def on_subscribe(self, subscription: Subscription) -> None:
        with self.condition:
            self.subscription = subscription
            self.condition.notify_all()

    def on_next(self, chunk: bytes) -> None:
        with self.condition:
            self.pending = False
            self.chunks.append(chunk)
            self.condition.notify_all()

    def on_error(self, error: BaseException) -> None:
        with self.condition:
            self.pending = False
            self.finished = True
            self.error = error
            self.condition.notify_all()

    def on_complete(self) -> None:
        with self.condition:
            self.pending = False
            self.finished = True
            self.condition.notify_all()


class PublisherReader(io.RawIOBase):
    """Read-only, non-seekable file object over a ChunkPublisher.

    This is the consuming end of the pipeline and what botocore receives as the
    request ``Body``. The publisher is subscribed on the first read. Each read
    that finds the buffer empty requests one chunk; a publisher error is raised
    from ``read``. After :meth:`cancel` returns the publisher is never asked
    for data again. :meth:`cancel` only takes the lock for bookkeeping, so it
    does not wait for a source read already in flight; that read's chunk is
    dropped.
    """

    def __init__(self, publisher: ChunkPublisher, content_length: int):
        super().__init__()
        self._publisher = publisher
        self._content_length = content_length
        self._sink = _ChunkSink()
        self._subscribed = False
        self._cancelled = False
        self._position = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def tell(self) -> int:
        return self._position

    def __len__(self) -> int:
        # botocore sizes streaming bodies with len() when they cannot seek
        return max(0, self._content_length - self._position)

    def readinto(self, buffer) -> int:  # type: ignore[no-untyped-def]
        view = memoryview(buffer).cast("B")
        data = self._pull(len(view))
        size = len(data)
        view[:size] = data
        return size

    def cancel(self) -> None:
        """Cancel the subscription and fail any further reads."""
        sink = self._sink
        with sink.condition:
            if self._cancelled:
                return
            self._cancelled = True
            if sink.subscription is not None:
                sink.subscription.cancel()
            sink.condition.notify_all()
        logger.debug("Upload body cancelled")

    def _pull(self, limit: int) -> bytes:
        if limit <= 0:
            return b""

        sink = self._sink
        with sink.condition:
            self._raise_if_cancelled()
            subscribe = not self._subscribed
            self._subscribed = True
        if subscribe:
            self._publisher.subscribe(sink)

        while True:
            with sink.condition:
                while True:
                    self._raise_if_cancelled()
                    if sink.chunks or sink.finished:
                        break
                    if not sink.pending and sink.subscription is not None:
                        sink.pending = True
                        subscription = sink.subscription
                        break
                    sink.condition.wait()

                if sink.chunks:
                    chunk = sink.chunks.popleft()
                    if len(chunk) > limit:
                        sink.chunks.appendleft(chunk[limit:])
                        chunk = chunk[:limit]
                    self._position += len(chunk)
                    return chunk

                if sink.finished:
                    if sink.error is not None:
                        raise sink.error
                    return b""

            # The lock is not held here, so cancel() never waits on a source read
            try:
                subscription.request(1)
            except BaseException as e:
                with sink.condition:
                    sink.pending = False
                    sink.finished = True
                    sink.error = e
                raise

    def _raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise S3UploadCancelledError(
                message="Upload body was cancelled",
                error_code="UploadCancelled",
                operation="read_body",
                context={"bytes_read": self._position},
            )
