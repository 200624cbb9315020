"""Transfer task - state machine for one file upload."""
import asyncio
import logging
import time
import uuid
from enum import Enum
from typing import Optional

from ..errors import (
    ErrorCategory,
    FileRejectedError,
    ServerRejectionError,
    TaskStateError,
    classify_error,
    describe_error,
)
from ..models import LocalFile, RemoteItem, RetentionPolicy, UploadOptions, UploadOutcome, UploadStatus
from ..protocols import IRemoteStore
from ..utils.events import CallbackBus

logger = logging.getLogger(__name__)


class TaskState(Enum):
    """Internal task state. Several states share one public status token."""
    QUEUED = "queued"
    SESSION_CREATING = "session_creating"
    TRANSFERRING = "transferring"
    FINALIZING = "finalizing"
    SUCCESS = "success"
    ERROR = "error"


_PUBLIC_STATUS = {
    TaskState.QUEUED: UploadStatus.QUEUEING,
    TaskState.SESSION_CREATING: UploadStatus.TRANSFERRING,
    TaskState.TRANSFERRING: UploadStatus.TRANSFERRING,
    TaskState.FINALIZING: UploadStatus.FINALIZING,
    TaskState.SUCCESS: UploadStatus.SUCCESS,
    TaskState.ERROR: UploadStatus.ERROR,
}

_TRANSITIONS = {
    TaskState.QUEUED: {TaskState.SESSION_CREATING, TaskState.ERROR},
    TaskState.SESSION_CREATING: {TaskState.TRANSFERRING, TaskState.ERROR},
    TaskState.TRANSFERRING: {TaskState.FINALIZING, TaskState.ERROR},
    TaskState.FINALIZING: {TaskState.SUCCESS, TaskState.ERROR},
    TaskState.SUCCESS: set(),
    TaskState.ERROR: set(),
}


def generate_file_id() -> str:
    """Correlation id in the upload_<epoch-ms>_<random> shape."""
    return f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class TransferTask:
    """
    Unit of work for one file.

    Owns its state, progress counter and result/error. Every status change
    and progress step is reported through the manager's CallbackBus, keyed
    by the task id.
    """

    def __init__(
        self,
        source_file: LocalFile,
        policy: RetentionPolicy,
        bus: CallbackBus,
        file_id: Optional[str] = None,
        budget_category: Optional[str] = None,
    ):
        self.id = file_id or source_file.file_id or generate_file_id()
        self.source_file = source_file
        self.policy = policy
        self.budget_category = budget_category
        self.state = TaskState.QUEUED
        self.progress = 0
        self.item: Optional[RemoteItem] = None
        self.error: Optional[str] = None
        self.error_category: Optional[ErrorCategory] = None
        self.cause: Optional[BaseException] = None
        self._bus = bus

    def __repr__(self):
        return f"TransferTask(id={self.id!r}, file={self.source_file.name!r}, state={self.state.value})"

    @property
    def status(self) -> UploadStatus:
        return _PUBLIC_STATUS[self.state]

    @property
    def is_terminal(self) -> bool:
        return self.state in (TaskState.SUCCESS, TaskState.ERROR)

    @property
    def remote_item_id(self) -> Optional[str]:
        return self.item.item_id if self.item else None

    @property
    def download_url(self) -> Optional[str]:
        return self.item.download_url if self.item else None

    async def announce(self) -> None:
        """Report the initial queued status."""
        await self._bus.emit("status_change", self.id, self.status)

    async def run(
        self,
        store: IRemoteStore,
        context_id: Optional[str],
        options: UploadOptions,
    ) -> UploadOutcome:
        """
        Drive the task to a terminal state. Never raises for remote failures.

        Args:
            store: Remote store client
            context_id: Component/draft id the upload belongs to
            options: Upload options (order id, budget category)

        Returns:
            UploadOutcome
        """
        file = self.source_file
        default_category = ErrorCategory.SESSION

        try:
            await self._transition(TaskState.SESSION_CREATING)
            session = await store.create_session(
                context_id,
                self.policy.mode,
                file_name=file.name,
                file_size=file.size,
                order_id=options.order_id,
                budget_category=self.budget_category,
            )

            default_category = ErrorCategory.UNKNOWN
            await self._transition(TaskState.TRANSFERRING)

            data = await asyncio.to_thread(file.read_bytes)
            item = await store.put_bytes(session, data, progress_callback=self._on_store_progress)

            if self.state is TaskState.TRANSFERRING:
                await self._transition(TaskState.FINALIZING)

            if item is None or not item.item_id:
                raise ServerRejectionError("upload finished without an item identifier")

            return await self._succeed(item)

        except Exception as e:
            return await self.fail(e, classify_error(e, default_category))

    async def reject(self, reason: str) -> UploadOutcome:
        """Fail a queued task that did not pass per-file validation."""
        return await self.fail(FileRejectedError(reason), ErrorCategory.VALIDATION)

    async def fail(
        self,
        exc: BaseException,
        category: Optional[ErrorCategory] = None,
    ) -> UploadOutcome:
        """Move to the error state and report it."""
        if self.is_terminal:
            return self.outcome()

        category = category or classify_error(exc)
        self.error = describe_error(category, self.source_file.name, exc)
        self.error_category = category
        self.cause = exc
        await self._transition(TaskState.ERROR)

        logger.warning(f"[{self.id}] {self.source_file.name} failed ({category.value}): {exc}")
        await self._bus.emit("error", self.id, self.error)
        return self.outcome()

    def outcome(self) -> UploadOutcome:
        file = self.source_file
        if self.state is TaskState.SUCCESS:
            return UploadOutcome.ok(
                file_id=self.id,
                file_name=file.name,
                item=self.item,
                file_size=file.size,
                budget_category=self.budget_category,
            )
        if self.state is TaskState.ERROR:
            return UploadOutcome.fail(
                file_id=self.id,
                file_name=file.name,
                error=self.error,
                error_category=self.error_category,
                cause=self.cause,
                file_size=file.size,
                budget_category=self.budget_category,
            )
        raise TaskStateError(f"Task {self.id} has no outcome yet (state={self.state.value})")

    async def _succeed(self, item: RemoteItem) -> UploadOutcome:
        await self._set_progress(100)
        self.item = item
        await self._transition(TaskState.SUCCESS)

        outcome = self.outcome()
        logger.info(f"[{self.id}] Uploaded {self.source_file.name} -> {item.item_id}")
        await self._bus.emit("success", self.id, outcome)
        return outcome

    async def _on_store_progress(self, percent: int) -> None:
        if self.state is not TaskState.TRANSFERRING:
            return
        await self._set_progress(percent)
        if self.progress >= 100 and self.state is TaskState.TRANSFERRING:
            # all bytes accepted, waiting on the store for item metadata
            await self._transition(TaskState.FINALIZING)

    async def _set_progress(self, percent) -> None:
        percent = max(0, min(100, int(percent)))
        if percent <= self.progress:
            return
        self.progress = percent
        await self._bus.emit("progress", self.id, percent)

    async def _transition(self, new_state: TaskState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise TaskStateError(
                f"Task {self.id}: illegal transition {self.state.value} -> {new_state.value}"
            )

        previous = self.status
        self.state = new_state
        logger.debug(f"[{self.id}] {self.source_file.name}: {new_state.value}")

        if self.status != previous:
            await self._bus.emit("status_change", self.id, self.status)
