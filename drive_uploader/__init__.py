"""
drive_uploader - Upload orchestration for staged and permanent drive files.

Follows SOLID principles:
- Single Responsibility: validation, task state and admission live apart
- Interface Segregation: the remote store is a small protocol
- Dependency Injection: store, callbacks and sink injected into the manager

Usage:
    from drive_uploader import (
        HTTPRemoteStore, LocalFile, UploadCallbacks, UploadOptions,
        create_budget_upload_manager, create_regular_upload_manager,
    )

    async with HTTPRemoteStore(api_url) as store:
        # Staged budget files (order id optional)
        budget = create_budget_upload_manager(store, UploadCallbacks(
            on_progress=lambda file_id, percent: print(file_id, percent),
            on_status_change=lambda file_id, status: print(file_id, status),
        ))
        check = budget.validate_budget_files(files, require_excel=True)
        outcomes = await budget.upload_files("component-1", files)

        # Permanent order files (order id required)
        regular = create_regular_upload_manager(store)
        outcome = await regular.upload_single_file(
            LocalFile.from_path(path), "component-1", UploadOptions(order_id="order-9")
        )

        await regular.download_file(outcome.item_id, outcome.file_name, is_staged=False)
        await regular.remove_file(outcome.item_id, outcome.file_name, is_staged=False)
"""
from .errors import (
    ConfigurationError,
    ConnectivityError,
    ErrorCategory,
    RemoteAccessError,
    RemoteItemNotFoundError,
    RemoteStoreError,
    ServerRejectionError,
    SessionCreationError,
    TransferError,
    UploaderError,
)
from .models import (
    ContextRequirement,
    FileCategory,
    LocalFile,
    RemoteItem,
    RetentionMode,
    RetentionPolicy,
    UploadConfig,
    UploadOptions,
    UploadOutcome,
    UploadSession,
    UploadStatus,
    ValidationIssue,
    ValidationResult,
)
from .orchestrator import UploadManager, create_budget_upload_manager, create_regular_upload_manager
from .protocols import IDownloadSink, IRemoteStore, IUploadObserver
from .services import DirectoryDownloadSink, HTTPRemoteStore
from .utils.events import UploadCallbacks
from .validation import FileSetValidator

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadManager",
    "create_budget_upload_manager",
    "create_regular_upload_manager",
    "UploadCallbacks",
    "FileSetValidator",
    # Models
    "ContextRequirement",
    "FileCategory",
    "LocalFile",
    "RemoteItem",
    "RetentionMode",
    "RetentionPolicy",
    "UploadConfig",
    "UploadOptions",
    "UploadOutcome",
    "UploadSession",
    "UploadStatus",
    "ValidationIssue",
    "ValidationResult",
    # Errors
    "ConfigurationError",
    "ConnectivityError",
    "ErrorCategory",
    "RemoteAccessError",
    "RemoteItemNotFoundError",
    "RemoteStoreError",
    "ServerRejectionError",
    "SessionCreationError",
    "TransferError",
    "UploaderError",
    # Services
    "DirectoryDownloadSink",
    "HTTPRemoteStore",
    "IDownloadSink",
    "IRemoteStore",
    "IUploadObserver",
]
