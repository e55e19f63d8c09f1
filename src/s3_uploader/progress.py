"""Upload progress values and the byte counter behind them."""

import threading
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Union

from .exceptions import S3ValidationError


def _floor_percentage(bytes_written: int, total_bytes: int) -> int:
    if total_bytes > 0:
        return (bytes_written * 100) // total_bytes
    return 0


class ByteCounter:
    """Cumulative count of bytes observed against a declared total.

    ``total_bytes`` is the caller-declared content length and never changes.
    Observations may arrive from a worker thread, so updates are locked.
    """

    def __init__(self, total_bytes: int):
        if total_bytes < 0:
            raise S3ValidationError(
                message=f"Declared content length must be non-negative: {total_bytes}",
                error_code="InvalidContentLength",
                context={"total_bytes": total_bytes},
            )
        self._total_bytes = total_bytes
        self._bytes_observed = 0
        self._lock = threading.Lock()

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    @property
    def bytes_observed(self) -> int:
        return self._bytes_observed

    def observe(self, chunk_size: int) -> int:
        """Add ``chunk_size`` to the running total and return the new total."""
        if chunk_size < 0:
            raise ValueError(f"Chunk size must be non-negative: {chunk_size}")
        with self._lock:
            self._bytes_observed += chunk_size
            return self._bytes_observed

    def percentage(self) -> int:
        """Whole percent complete, 0 when the declared total is 0."""
        return _floor_percentage(self._bytes_observed, self._total_bytes)


@dataclass(frozen=True)
class InProgress:
    bytes_written: int
    total_bytes: int

    @property
    def percentage(self) -> int:
        return _floor_percentage(self.bytes_written, self.total_bytes)

    @property
    def is_terminal(self) -> bool:
        return False


@dataclass(frozen=True)
class Completed:
    entity_tag: Optional[str] = None
    version_id: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    cause: BaseException

    @property
    def is_terminal(self) -> bool:
        return True


UploadProgress = Union[InProgress, Completed, Failed]

ProgressCallback = Callable[[int, int], None]


async def on_progress_changed(
    progress: AsyncIterator[UploadProgress],
    on_percentage: Callable[[int], None],
) -> AsyncIterator[UploadProgress]:
    """Re-yield ``progress`` unchanged, reporting the percentage of each InProgress."""
    try:
        async for value in progress:
            if isinstance(value, InProgress):
                on_percentage(value.percentage)
            yield value
    finally:
        aclose = getattr(progress, "aclose", None)
        if aclose is not None:
            await aclose()
