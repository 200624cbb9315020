"""Core manager - coordinates upload, download and removal against the drive."""
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..errors import (
    ConfigurationError,
    ErrorCategory,
    RemoteAccessError,
    RemoteItemNotFoundError,
    TransferError,
    classify_error,
    describe_exception,
)
from ..models import (
    LocalFile,
    RetentionMode,
    RetentionPolicy,
    UploadConfig,
    UploadOptions,
    UploadOutcome,
    ValidationResult,
)
from ..protocols import IDownloadSink, IRemoteStore, IUploadObserver
from ..services.downloads import DirectoryDownloadSink
from ..utils.events import CallbackBus
from ..validation import FileSetValidator
from .parallel import ParallelTransferCoordinator, get_parallel_count
from .task import TransferTask

logger = logging.getLogger(__name__)


class UploadManager:
    """
    Orchestrates drive transfers for one retention policy.

    Follows:
    - Dependency Injection (store, callbacks and sink injected)
    - Single Responsibility (validation, task state and admission delegated)

    One instance lives for one caller session (e.g. an editing screen) and is
    then dropped; it owns no remote resources, only in-flight bookkeeping.
    A caller needing the other retention mode builds a second manager.

    Usage:
        async with HTTPRemoteStore(api_url) as store:
            manager = create_budget_upload_manager(store, UploadCallbacks(
                on_progress=lambda file_id, percent: ...,
                on_status_change=lambda file_id, status: ...,
            ))
            outcomes = await manager.upload_files("component-1", files)
    """

    def __init__(
        self,
        store: IRemoteStore,
        policy: RetentionPolicy,
        callbacks: Optional[IUploadObserver] = None,
        config: Optional[UploadConfig] = None,
        sink: Optional[IDownloadSink] = None,
    ):
        """
        Initialize manager with dependencies.

        Args:
            store: Remote store client (HTTPRemoteStore or any IRemoteStore)
            policy: Immutable retention policy for every operation
            callbacks: UploadCallbacks or any object with on_* hooks
            config: Upload configuration
            sink: Where downloads are delivered (default: config.download_dir)
        """
        self._store = store
        self._policy = policy
        self._config = config or UploadConfig()
        self._bus = CallbackBus(callbacks)
        self._sink = sink or DirectoryDownloadSink(self._config.download_dir)
        self._validator = FileSetValidator(
            policy=policy,
            max_file_size=self._config.max_file_size,
        )
        self._tasks: Dict[str, TransferTask] = {}

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    @property
    def config(self) -> UploadConfig:
        return self._config

    @property
    def active_tasks(self) -> Mapping[str, TransferTask]:
        """Read-only view of in-flight tasks by id."""
        return MappingProxyType(self._tasks)

    async def upload_files(
        self,
        context_id: Optional[str],
        files: Iterable[LocalFile],
        options: Optional[UploadOptions] = None,
    ) -> List[UploadOutcome]:
        """
        Upload a batch of files concurrently.

        Per-file failures are reported through on_error and in the returned
        outcomes; they never abort sibling transfers.

        Args:
            context_id: Component/draft id the files belong to
            files: Files to upload
            options: Order id, budget category

        Returns:
            One UploadOutcome per file, in input order

        Raises:
            ConfigurationError: Required context missing (before any remote call)
        """
        options = options or UploadOptions()
        self._check_context(options)

        files = list(files)
        if not files:
            return []

        tasks: List[TransferTask] = []
        try:
            for file in files:
                tasks.append(self._create_task(file, budget_category=options.budget_category))
        except ConfigurationError:
            for task in tasks:
                self._tasks.pop(task.id, None)
            raise

        for task in tasks:
            await task.announce()

        coordinator = ParallelTransferCoordinator(self._parallel_count(files))
        return await coordinator.run(tasks, lambda task: self._run_task(task, context_id, options))

    async def upload_single_file(
        self,
        file: LocalFile,
        context_id: Optional[str] = None,
        options: Optional[UploadOptions] = None,
    ) -> UploadOutcome:
        """
        Upload exactly one file.

        Raises:
            ConfigurationError: Required context missing
            TransferError: The upload failed (already reported through on_error)
        """
        options = options or UploadOptions()
        self._check_context(options)

        task = self._create_task(file, file_id=options.file_id, budget_category=options.budget_category)
        await task.announce()
        outcome = await self._run_task(task, context_id, options)

        if not outcome.success:
            raise TransferError(
                outcome.file_id,
                outcome.error,
                outcome.error_category,
                outcome.cause,
            ) from outcome.cause
        return outcome

    async def download_file(
        self,
        item_id: Optional[str],
        file_name: str,
        is_staged: bool = True,
    ) -> Optional[Path]:
        """
        Fetch a remote item and hand it to the download sink.

        Returns:
            Where the file was saved, or None when item_id is empty

        Raises:
            RemoteAccessError: Unknown item, interrupted transfer or failed local save
        """
        if not item_id:
            logger.debug("download_file called without an item id, ignoring")
            return None

        mode = RetentionMode.STAGED if is_staged else RetentionMode.PERMANENT
        logger.info(f"Downloading {file_name} ({item_id}, {mode.value})")

        try:
            data = await self._store.get_bytes(item_id, mode)
        except Exception as e:
            raise self._remote_access_error("baixar", item_id, file_name, e) from e

        try:
            path = await self._sink.save(file_name or item_id, data)
        except Exception as e:
            message = f"Erro ao salvar {file_name}: {describe_exception(e)}"
            logger.warning(message)
            raise RemoteAccessError(item_id, message, ErrorCategory.UNKNOWN, e) from e

        logger.info(f"Downloaded {file_name} to {path}")
        return path

    async def remove_file(
        self,
        item_id: Optional[str],
        file_name: str,
        is_staged: bool = True,
    ) -> None:
        """
        Delete a remote item. Already-absent items count as removed.

        Raises:
            RemoteAccessError: Genuine remote store failure
        """
        if not item_id:
            logger.debug("remove_file called without an item id, ignoring")
            return

        mode = RetentionMode.STAGED if is_staged else RetentionMode.PERMANENT

        try:
            await self._store.delete(item_id, mode)
        except RemoteItemNotFoundError:
            logger.info(f"{file_name} ({item_id}) already absent from the drive")
            return
        except Exception as e:
            raise self._remote_access_error("remover", item_id, file_name, e) from e

        logger.info(f"Removed {file_name} ({item_id}, {mode.value})")

    def validate_budget_files(
        self,
        files: Sequence[LocalFile],
        require_excel: bool = False,
    ) -> ValidationResult:
        """Validate files against this manager's policy. Pure, no I/O."""
        return self._validator.validate(files, require_category=require_excel)

    def _check_context(self, options: UploadOptions) -> None:
        is_permanent = not self._policy.is_staged
        if options.permanent is not None and options.permanent != is_permanent:
            raise ConfigurationError(
                f"permanent={options.permanent} conflicts with this manager's "
                f"{self._policy.mode.value} policy; build a separate manager"
            )
        if self._policy.requires_order_id and not options.order_id:
            raise ConfigurationError(f"order_id is required for {self._policy.mode.value} uploads")

    def _create_task(
        self,
        file: LocalFile,
        file_id: Optional[str] = None,
        budget_category: Optional[str] = None,
    ) -> TransferTask:
        task = TransferTask(file, self._policy, self._bus, file_id=file_id, budget_category=budget_category)
        if task.id in self._tasks:
            raise ConfigurationError(f"file id {task.id} is already in flight")
        self._tasks[task.id] = task
        return task

    async def _run_task(
        self,
        task: TransferTask,
        context_id: Optional[str],
        options: UploadOptions,
    ) -> UploadOutcome:
        try:
            issues = self._validator.check_file(task.source_file)
            if issues:
                return await task.reject("; ".join(issue.message for issue in issues))
            return await task.run(self._store, context_id, options)
        finally:
            self._tasks.pop(task.id, None)

    def _parallel_count(self, files: Sequence[LocalFile]) -> int:
        if self._config.max_parallel is not None:
            return self._config.max_parallel
        avg_size = sum(file.size for file in files) / len(files)
        return get_parallel_count(avg_size)

    @staticmethod
    def _remote_access_error(action: str, item_id: str, file_name: str, exc: Exception) -> RemoteAccessError:
        category = classify_error(exc)
        if category is ErrorCategory.CONNECTIVITY:
            message = f"Erro de rede ao {action} {file_name}: {describe_exception(exc)}"
        else:
            message = f"Erro ao {action} {file_name} do OneDrive: {describe_exception(exc)}"
        logger.warning(message)
        return RemoteAccessError(item_id, message, category, exc)


def create_budget_upload_manager(
    store: IRemoteStore,
    callbacks: Optional[IUploadObserver] = None,
    config: Optional[UploadConfig] = None,
    sink: Optional[IDownloadSink] = None,
) -> UploadManager:
    """Manager for staged budget files: order id optional, budget types only."""
    return UploadManager(store, RetentionPolicy.staged(), callbacks, config, sink)


def create_regular_upload_manager(
    store: IRemoteStore,
    callbacks: Optional[IUploadObserver] = None,
    config: Optional[UploadConfig] = None,
    sink: Optional[IDownloadSink] = None,
) -> UploadManager:
    """Manager for permanent files: order id required, any type."""
    return UploadManager(store, RetentionPolicy.permanent(), callbacks, config, sink)
