"""Parallel transfer utilities."""
import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence

from ..models import UploadOutcome
from .task import TransferTask

logger = logging.getLogger(__name__)

TaskRunner = Callable[[TransferTask], Awaitable[UploadOutcome]]


def get_parallel_count(avg_size: float) -> int:
    """
    Get optimal parallel upload count based on average file size.

    Small files benefit from more parallelism.
    Large files are sent in many chunks each, so limit parallelism.
    """
    MB = 1024 * 1024

    if avg_size < 1 * MB:
        return 6   # Small files: high parallelism
    elif avg_size < 10 * MB:
        return 4   # Medium files: moderate parallelism
    else:
        return 2   # Large files: low parallelism


class ParallelTransferCoordinator:
    """
    Runs transfer tasks under an admission limit.

    At most max_parallel tasks hold a slot (session creation through
    finalization); the rest stay queued until a slot frees.
    """

    def __init__(self, max_parallel: int):
        self._max_parallel = max(1, int(max_parallel))
        self._semaphore = asyncio.Semaphore(self._max_parallel)
        self._active = 0
        self._peak = 0

    @property
    def max_parallel(self) -> int:
        return self._max_parallel

    @property
    def peak_parallel(self) -> int:
        """Highest number of tasks admitted at once during run()."""
        return self._peak

    async def run(self, tasks: Sequence[TransferTask], runner: TaskRunner) -> List[UploadOutcome]:
        """
        Run every task to a terminal state.

        Returns:
            Outcomes in the same order as tasks
        """
        logger.info(f"Starting upload: {len(tasks)} files (max {self._max_parallel} parallel)")

        results = await asyncio.gather(*(self._admit(task, runner) for task in tasks))

        uploaded = sum(1 for r in results if r.success)
        failed = len(results) - uploaded
        logger.info(f"File uploads complete: {uploaded} successful, {failed} failed")
        return list(results)

    async def _admit(self, task: TransferTask, runner: TaskRunner) -> UploadOutcome:
        async with self._semaphore:
            self._active += 1
            self._peak = max(self._peak, self._active)
            logger.debug(f"Admitted {task.id} ({self._active}/{self._max_parallel} slots in use)")
            try:
                return await runner(task)
            except Exception as e:
                logger.error(f"Unexpected error uploading {task.source_file.name}: {e}")
                return await task.fail(e)
            finally:
                self._active -= 1
