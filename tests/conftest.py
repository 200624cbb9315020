"""Shared fixtures: in-memory remote store and a recording observer."""
import asyncio
import itertools
from collections import defaultdict
from typing import Dict, Optional

import pytest

from drive_uploader.errors import RemoteItemNotFoundError, SessionCreationError
from drive_uploader.models import LocalFile, RemoteItem, RetentionMode, UploadSession, UploadStatus


class FakeRemoteStore:
    """In-memory IRemoteStore with configurable delay and failures."""

    def __init__(self, delay: float = 0.005, progress_steps=(25, 50, 75, 100), strict_delete: bool = False):
        self.delay = delay
        self.progress_steps = progress_steps
        self.strict_delete = strict_delete
        self.items: Dict[tuple, bytes] = {}
        self.sessions = []
        self.deleted = []
        self.fail_session_for: Dict[str, Exception] = {}
        self.fail_transfer_for: Dict[str, Exception] = {}
        self.active = 0
        self.peak = 0
        self._ids = itertools.count(1)

    async def create_session(self, context_id, mode, *, file_name, file_size, order_id=None, budget_category=None):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(self.delay)
        if file_name in self.fail_session_for:
            self.active -= 1
            raise self.fail_session_for[file_name]
        self.sessions.append({
            "context_id": context_id,
            "mode": mode,
            "file_name": file_name,
            "file_size": file_size,
            "order_id": order_id,
            "budget_category": budget_category,
        })
        return UploadSession(session_id=f"session-{next(self._ids)}", mode=mode, file_name=file_name)

    async def put_bytes(self, session, data, progress_callback=None):
        try:
            for step in self.progress_steps:
                await asyncio.sleep(self.delay)
                if session.file_name in self.fail_transfer_for:
                    raise self.fail_transfer_for[session.file_name]
                if progress_callback:
                    await progress_callback(step)
            item_id = f"item-{next(self._ids)}"
            self.items[(session.mode, item_id)] = data
            return RemoteItem(item_id=item_id, download_url=f"https://drive.test/{item_id}")
        finally:
            self.active -= 1

    async def get_bytes(self, item_id, mode):
        await asyncio.sleep(0)
        try:
            return self.items[(mode, item_id)]
        except KeyError:
            raise RemoteItemNotFoundError(f"item {item_id} not found") from None

    async def delete(self, item_id, mode):
        await asyncio.sleep(0)
        self.deleted.append((item_id, mode))
        if (mode, item_id) not in self.items and self.strict_delete:
            raise RemoteItemNotFoundError(f"item {item_id} not found")
        self.items.pop((mode, item_id), None)


class RecordingCallbacks:
    """Records every callback, keyed by file id."""

    def __init__(self):
        self.statuses = defaultdict(list)
        self.progress = defaultdict(list)
        self.successes = {}
        self.errors = {}
        self._in_flight = set()
        self.peak_in_flight = 0

    def on_progress(self, file_id, percent):
        self.progress[file_id].append(percent)

    def on_status_change(self, file_id, status):
        self.statuses[file_id].append(status)
        if status == UploadStatus.TRANSFERRING:
            self._in_flight.add(file_id)
            self.peak_in_flight = max(self.peak_in_flight, len(self._in_flight))
        else:
            self._in_flight.discard(file_id)

    def on_success(self, file_id, outcome):
        self.successes[file_id] = outcome

    def on_error(self, file_id, message):
        self.errors[file_id] = message


def make_file(name: str, size: Optional[int] = None, file_id: Optional[str] = None) -> LocalFile:
    content = b"x" * (size if size is not None else 16)
    return LocalFile.from_bytes(name, content, file_id=file_id)


@pytest.fixture
def store():
    return FakeRemoteStore()


@pytest.fixture
def recorder():
    return RecordingCallbacks()
