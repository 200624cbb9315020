"""Tests for UploadManager orchestration."""
import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from conftest import FakeRemoteStore, make_file
from drive_uploader.errors import (
    ConfigurationError,
    ConnectivityError,
    ErrorCategory,
    RemoteAccessError,
    ServerRejectionError,
    TransferError,
)
from drive_uploader.models import (
    ContextRequirement,
    RetentionMode,
    RetentionPolicy,
    UploadConfig,
    UploadOptions,
    UploadStatus,
)
from drive_uploader.orchestrator import (
    UploadManager,
    create_budget_upload_manager,
    create_regular_upload_manager,
)
from drive_uploader.protocols import IDownloadSink
from drive_uploader.utils.events import UploadCallbacks


def _budget(store, recorder=None, max_parallel=3, tmp_path=None, **kwargs):
    config = UploadConfig(max_parallel=max_parallel, download_dir=tmp_path or Path("downloads"), **kwargs)
    return create_budget_upload_manager(store, recorder, config)


class TestUploadFiles:
    @pytest.mark.asyncio
    async def test_three_files_two_slots_all_succeed(self, store, recorder):
        manager = _budget(store, recorder, max_parallel=2)
        files = [make_file(f"sheet{i}.xlsx", file_id=f"f{i}") for i in range(3)]

        outcomes = await manager.upload_files("component-1", files)

        assert [o.file_id for o in outcomes] == ["f0", "f1", "f2"]
        assert all(o.success for o in outcomes)
        assert len({o.item_id for o in outcomes}) == 3
        for file_id in ("f0", "f1", "f2"):
            assert recorder.statuses[file_id] == ["queueing", "carregando", "finalizando", "success"]
            assert recorder.progress[file_id][-1] == 100
        assert manager.active_tasks == {}

    @pytest.mark.asyncio
    async def test_concurrency_bound_is_respected(self, recorder):
        store = FakeRemoteStore(delay=0.01)
        manager = _budget(store, recorder, max_parallel=2)
        files = [make_file(f"f{i}.pdf", file_id=f"f{i}") for i in range(6)]

        outcomes = await manager.upload_files("component-1", files)

        assert all(o.success for o in outcomes)
        assert store.peak <= 2
        assert recorder.peak_in_flight <= 2
        assert store.peak == 2

    @pytest.mark.asyncio
    async def test_extra_tasks_stay_queued_until_a_slot_frees(self, recorder):
        store = FakeRemoteStore(delay=0.02)
        manager = _budget(store, recorder, max_parallel=1)
        files = [make_file("a.pdf", file_id="a"), make_file("b.pdf", file_id="b")]

        upload = asyncio.create_task(manager.upload_files("component-1", files))
        await asyncio.sleep(0.01)

        assert manager.active_tasks["a"].status == UploadStatus.TRANSFERRING
        assert manager.active_tasks["b"].status == UploadStatus.QUEUEING
        await upload

    @pytest.mark.asyncio
    async def test_partial_failure_is_isolated(self, store, recorder):
        store.fail_transfer_for["a.pdf"] = ServerRejectionError("500 from drive")
        manager = _budget(store, recorder)
        files = [make_file("a.pdf", file_id="a"), make_file("b.pdf", file_id="b")]

        outcomes = await manager.upload_files("component-1", files)

        a, b = outcomes
        assert a.status == UploadStatus.ERROR
        assert a.item_id is None
        assert a.error_category is ErrorCategory.SERVER_REJECTION
        assert b.status == UploadStatus.SUCCESS
        assert b.item_id is not None
        assert "a" in recorder.errors and "b" in recorder.successes

    @pytest.mark.asyncio
    async def test_files_failing_validation_never_reach_the_store(self, store, recorder):
        manager = _budget(store, recorder, max_file_size=8)
        files = [make_file("big.pdf", size=64, file_id="big"), make_file("tool.exe", file_id="exe")]

        outcomes = await manager.upload_files("component-1", files)

        assert [o.error_category for o in outcomes] == [ErrorCategory.VALIDATION, ErrorCategory.VALIDATION]
        assert store.sessions == []
        assert recorder.statuses["exe"] == ["queueing", "error"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, store):
        assert await _budget(store).upload_files("component-1", []) == []

    @pytest.mark.asyncio
    async def test_session_receives_context_and_options(self, store):
        manager = _budget(store)
        options = UploadOptions(order_id="order-7", budget_category="labor")

        outcomes = await manager.upload_files("component-1", [make_file("a.xlsx")], options)

        assert outcomes[0].budget_category == "labor"
        assert store.sessions[0]["context_id"] == "component-1"
        assert store.sessions[0]["mode"] is RetentionMode.STAGED
        assert store.sessions[0]["order_id"] == "order-7"
        assert store.sessions[0]["budget_category"] == "labor"

    @pytest.mark.asyncio
    async def test_adaptive_parallelism_when_unset(self, recorder):
        store = FakeRemoteStore()
        manager = _budget(store, recorder, max_parallel=None)
        files = [make_file(f"f{i}.pdf") for i in range(8)]

        outcomes = await manager.upload_files("component-1", files)

        assert all(o.success for o in outcomes)
        assert store.peak <= 6

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_rejected_before_any_transfer(self, store):
        manager = _budget(store)
        files = [make_file("a.pdf", file_id="same"), make_file("b.pdf", file_id="same")]

        with pytest.raises(ConfigurationError):
            await manager.upload_files("component-1", files)

        assert store.sessions == []
        assert manager.active_tasks == {}

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self, store):
        seen = []

        async def on_success(file_id, outcome):
            await asyncio.sleep(0)
            seen.append(file_id)

        manager = _budget(store, UploadCallbacks(on_success=on_success))
        await manager.upload_files("component-1", [make_file("a.pdf", file_id="a")])

        assert seen == ["a"]

    @pytest.mark.asyncio
    async def test_broken_callback_does_not_abort_transfer(self, store):
        def on_progress(file_id, percent):
            raise RuntimeError("ui exploded")

        manager = _budget(store, UploadCallbacks(on_progress=on_progress))
        outcomes = await manager.upload_files("component-1", [make_file("a.pdf")])

        assert outcomes[0].success is True


class TestPolicy:
    @pytest.mark.asyncio
    async def test_regular_manager_requires_order_id(self, store):
        manager = create_regular_upload_manager(store)

        with pytest.raises(ConfigurationError):
            await manager.upload_files("component-1", [make_file("contract.zip")])

        assert store.sessions == []

    @pytest.mark.asyncio
    async def test_regular_manager_with_order_id_proceeds(self, store):
        manager = create_regular_upload_manager(store)

        outcomes = await manager.upload_files(
            "component-1", [make_file("contract.zip")], UploadOptions(order_id="order-1")
        )

        assert outcomes[0].success is True
        assert store.sessions[0]["mode"] is RetentionMode.PERMANENT

    @pytest.mark.asyncio
    async def test_staged_policy_requiring_order_id(self, store):
        policy = RetentionPolicy(
            mode=RetentionMode.STAGED,
            context_requirement=ContextRequirement.REQUIRED_ORDER_ID,
        )
        manager = UploadManager(store, policy)

        with pytest.raises(ConfigurationError):
            await manager.upload_files("component-1", [make_file("a.xlsx")])

    @pytest.mark.asyncio
    async def test_permanent_flag_must_match_policy(self, store):
        manager = create_budget_upload_manager(store)

        with pytest.raises(ConfigurationError):
            await manager.upload_files("component-1", [make_file("a.xlsx")], UploadOptions(permanent=True))

    @pytest.mark.asyncio
    async def test_budget_manager_order_id_optional(self, store):
        manager = create_budget_upload_manager(store)
        outcomes = await manager.upload_files(None, [make_file("a.xlsx")])
        assert outcomes[0].success is True


class TestUploadSingleFile:
    @pytest.mark.asyncio
    async def test_returns_outcome_with_custom_id(self, store, recorder):
        manager = _budget(store, recorder)

        outcome = await manager.upload_single_file(
            make_file("a.xlsx"), "component-1", UploadOptions(file_id="custom-1")
        )

        assert outcome.file_id == "custom-1"
        assert outcome.success is True
        assert recorder.statuses["custom-1"][-1] == "success"

    @pytest.mark.asyncio
    async def test_raises_classified_error(self, store, recorder):
        store.fail_transfer_for["a.xlsx"] = ConnectivityError("reset by peer")
        manager = _budget(store, recorder)

        with pytest.raises(TransferError) as exc_info:
            await manager.upload_single_file(make_file("a.xlsx"), "component-1", UploadOptions(file_id="x"))

        error = exc_info.value
        assert error.file_id == "x"
        assert error.category is ErrorCategory.CONNECTIVITY
        assert isinstance(error.cause, ConnectivityError)
        assert recorder.errors["x"] == error.message
        assert manager.active_tasks == {}

    @pytest.mark.asyncio
    async def test_configuration_error_precedes_remote_call(self, store):
        manager = create_regular_upload_manager(store)
        with pytest.raises(ConfigurationError):
            await manager.upload_single_file(make_file("a.xlsx"), "component-1")
        assert store.sessions == []


class TestDownloadAndRemove:
    @pytest.mark.asyncio
    async def test_download_saves_bytes(self, store, tmp_path):
        manager = _budget(store, tmp_path=tmp_path)
        outcome = await manager.upload_single_file(make_file("a.xlsx", size=4), "component-1")

        path = await manager.download_file(outcome.item_id, "a.xlsx", is_staged=True)

        assert path == tmp_path / "a.xlsx"
        assert path.read_bytes() == b"xxxx"

    @pytest.mark.asyncio
    async def test_download_never_overwrites(self, store, tmp_path):
        manager = _budget(store, tmp_path=tmp_path)
        outcome = await manager.upload_single_file(make_file("a.xlsx"), "component-1")

        first = await manager.download_file(outcome.item_id, "a.xlsx")
        second = await manager.download_file(outcome.item_id, "a.xlsx")

        assert first.name == "a.xlsx"
        assert second.name == "a (1).xlsx"

    @pytest.mark.asyncio
    async def test_download_uses_namespace_from_is_staged(self, store, tmp_path):
        manager = _budget(store, tmp_path=tmp_path)
        outcome = await manager.upload_single_file(make_file("a.xlsx"), "component-1")

        with pytest.raises(RemoteAccessError):
            await manager.download_file(outcome.item_id, "a.xlsx", is_staged=False)

    @pytest.mark.asyncio
    async def test_download_unknown_id(self, store, tmp_path):
        manager = _budget(store, tmp_path=tmp_path)

        with pytest.raises(RemoteAccessError) as exc_info:
            await manager.download_file("missing", "a.xlsx")

        assert exc_info.value.item_id == "missing"
        assert "OneDrive" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_download_local_save_failure(self, store):
        class ReadOnlySink(IDownloadSink):
            async def save(self, file_name, data):
                raise PermissionError("read-only dir")

        manager = create_budget_upload_manager(store, sink=ReadOnlySink())
        outcome = await manager.upload_single_file(make_file("a.xlsx"), "component-1")

        with pytest.raises(RemoteAccessError) as exc_info:
            await manager.download_file(outcome.item_id, "a.xlsx")

        assert exc_info.value.item_id == outcome.item_id
        assert exc_info.value.category is ErrorCategory.UNKNOWN
        assert isinstance(exc_info.value.cause, PermissionError)
        assert "a.xlsx" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_download_and_remove_ignore_empty_ids(self, tmp_path):
        store = AsyncMock()
        manager = _budget(store, tmp_path=tmp_path)

        assert await manager.download_file(None, "a.xlsx") is None
        await manager.remove_file("", "a.xlsx")

        store.get_bytes.assert_not_awaited()
        store.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_remove_twice_succeeds(self):
        store = FakeRemoteStore(strict_delete=True)
        manager = _budget(store)
        outcome = await manager.upload_single_file(make_file("a.xlsx"), "component-1")

        await manager.remove_file(outcome.item_id, "a.xlsx", is_staged=True)
        await manager.remove_file(outcome.item_id, "a.xlsx", is_staged=True)

        assert store.deleted == [
            (outcome.item_id, RetentionMode.STAGED),
            (outcome.item_id, RetentionMode.STAGED),
        ]

    @pytest.mark.asyncio
    async def test_remove_propagates_genuine_errors(self):
        store = AsyncMock()
        store.delete.side_effect = ConnectivityError("timeout")
        manager = _budget(store)

        with pytest.raises(RemoteAccessError) as exc_info:
            await manager.remove_file("item-1", "a.xlsx", is_staged=False)

        assert exc_info.value.category is ErrorCategory.CONNECTIVITY
        assert "rede" in exc_info.value.message
        store.delete.assert_awaited_once_with("item-1", RetentionMode.PERMANENT)


class TestValidateBudgetFiles:
    def test_empty_set_scenario(self, store):
        result = create_budget_upload_manager(store).validate_budget_files([], True)

        assert result.is_valid is False
        assert len(result.errors) == 2
        assert result.messages[0] == "no files provided"
        assert result.counts == {"total": 0}

    def test_uses_policy_accepted_types(self, store):
        files = [make_file("contract.zip")]
        assert create_budget_upload_manager(store).validate_budget_files(files).is_valid is False
        assert create_regular_upload_manager(store).validate_budget_files(files).is_valid is True

    def test_does_not_touch_the_store(self):
        store = AsyncMock()
        create_budget_upload_manager(store).validate_budget_files([make_file("a.xlsx")], True)
        assert store.mock_calls == []
