"""
Download Sink - Single Responsibility: deliver downloaded bytes locally.
"""
import asyncio
import logging
from pathlib import Path

from ..protocols import IDownloadSink

logger = logging.getLogger(__name__)


class DirectoryDownloadSink(IDownloadSink):
    """
    Saves downloads into a directory, never overwriting existing files.

    A second "report.xlsx" lands as "report (1).xlsx", the way browsers do.
    """

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    async def save(self, file_name: str, data: bytes) -> Path:
        return await asyncio.to_thread(self._write, file_name, data)

    def _write(self, file_name: str, data: bytes) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        target = self._unique_path(Path(file_name).name or "download")
        target.write_bytes(data)
        logger.debug(f"Saved {len(data)} bytes to {target}")
        return target

    def _unique_path(self, name: str) -> Path:
        candidate = self._directory / name
        stem, suffix = Path(name).stem, Path(name).suffix
        counter = 1
        while candidate.exists():
            candidate = self._directory / f"{stem} ({counter}){suffix}"
            counter += 1
        return candidate
