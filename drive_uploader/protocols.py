"""
Protocols (Interfaces) for Dependency Inversion.

Following Interface Segregation Principle - small, focused interfaces.
"""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Protocol, Awaitable, Callable, Any, runtime_checkable

from .models import RemoteItem, RetentionMode, UploadSession, UploadOutcome, UploadStatus

ProgressCallback = Callable[[int], Awaitable[None]]


@runtime_checkable
class IRemoteStore(Protocol):
    """Interface for the cloud drive backend."""

    async def create_session(
        self,
        context_id: Optional[str],
        mode: RetentionMode,
        *,
        file_name: str,
        file_size: int,
        order_id: Optional[str] = None,
        budget_category: Optional[str] = None,
    ) -> UploadSession:
        """Open an upload session in the namespace for mode."""
        ...

    async def put_bytes(
        self,
        session: UploadSession,
        data: bytes,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> RemoteItem:
        """Send the payload. Awaits progress_callback with 0-100, last call 100."""
        ...

    async def get_bytes(self, item_id: str, mode: RetentionMode) -> bytes:
        """Fetch item content. Raises RemoteItemNotFoundError for unknown ids."""
        ...

    async def delete(self, item_id: str, mode: RetentionMode) -> None:
        """Delete item. Absence is not an error."""
        ...


@runtime_checkable
class IUploadObserver(Protocol):
    """The four hooks a manager reports through. Sync or async."""

    def on_progress(self, file_id: str, percent: int) -> Any:
        ...

    def on_status_change(self, file_id: str, status: UploadStatus) -> Any:
        ...

    def on_success(self, file_id: str, outcome: UploadOutcome) -> Any:
        ...

    def on_error(self, file_id: str, message: str) -> Any:
        ...


class IDownloadSink(ABC):
    """Interface for delivering downloaded bytes to the caller's environment."""

    @abstractmethod
    async def save(self, file_name: str, data: bytes) -> Path:
        """Persist data and return where it landed."""
        pass
