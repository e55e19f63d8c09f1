"""Immutable outcome snapshots returned by the non-streaming operations."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class UploadResult:
    success: bool
    entity_tag: Optional[str] = None
    version_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class OperationResult:
    success: bool
    message: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def is_successful(self) -> bool:
        return self.success


@dataclass(frozen=True)
class FolderResult:
    success: bool
    created_objects: Tuple[str, ...] = ()
    deleted_objects: Tuple[str, ...] = ()
    message: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_objects)
