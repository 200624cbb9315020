"""Orchestrator package - coordinates transfer workflows."""
from .core import UploadManager, create_budget_upload_manager, create_regular_upload_manager
from .parallel import ParallelTransferCoordinator, get_parallel_count
from .task import TaskState, TransferTask

__all__ = [
    "UploadManager",
    "create_budget_upload_manager",
    "create_regular_upload_manager",
    "ParallelTransferCoordinator",
    "get_parallel_count",
    "TaskState",
    "TransferTask",
]
