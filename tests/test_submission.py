"""
SubmissionOrchestrator tests

Scenario tests against the in-memory backend: the happy path, fail-fast
compensation in create and edit mode, merge failures, and validation.
"""
from unittest.mock import MagicMock

import pytest

from core.errors import (
    BatchLockedError,
    MergeRejectedError,
    MetadataRegistrationError,
    ValidationError,
)
from core.models import EntryStatus, SpotFields
from core.services.events import EntryStatusEvent, EventChannel, EventRecorder, SubmissionStateEvent
from core.services.interfaces import SubmissionState
from core.services.submission import SubmissionOrchestrator, draft_key
from infrastructure.draft_store import InMemoryDraftStore

LIST_ID = "list-1"


@pytest.fixture
def channel():
    return EventChannel()


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def drafts():
    return InMemoryDraftStore()


@pytest.fixture
def orchestrator(backend, uploader, channel, notifier, drafts):
    return SubmissionOrchestrator(backend, uploader, channel=channel, notifier=notifier, drafts=drafts)


def _add(batch, make_source, n):
    return [e.id for e in batch.add_files(make_source(400, 300 + i) for i in range(n)).added]


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_three_photos_all_done(self, orchestrator, batch, previews, make_source, fields, backend, storage, notifier):
        ids = _add(batch, make_source, 3)

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.ALL_DONE
        assert result.ok
        assert result.created is True
        assert len(result.photos) == 3
        assert result.entry_statuses == {i: EntryStatus.SUCCESS for i in ids}
        assert len(batch) == 0
        assert previews.active_count == 0
        assert backend.calls_to("delete_spot_photo") == []
        assert backend.calls_to("delete_spot") == []
        assert len(backend.photos_of(result.spot_id)) == 3
        assert len(storage.objects) == 3
        notifier.notify.assert_called_once_with("Spot added", "success")
        notifier.navigate_back.assert_called_once_with(LIST_ID)

    @pytest.mark.asyncio
    async def test_empty_batch_all_done(self, orchestrator, batch, fields, backend):
        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.ALL_DONE
        assert result.photos == []
        assert len(backend.calls_to("merge_spot")) == 1

    @pytest.mark.asyncio
    async def test_edit_mode_updates_existing_spot(self, orchestrator, batch, make_source, fields, backend, existing_spot, notifier):
        _add(batch, make_source, 1)

        result = await orchestrator.submit(LIST_ID, fields, batch, spot_id=existing_spot)

        assert result.ok
        assert result.spot_id == existing_spot
        assert result.created is False
        assert backend.spots[existing_spot]["name"] == "Kebab Haus"
        notifier.notify.assert_called_once_with("Spot updated", "success")

    @pytest.mark.asyncio
    async def test_merge_payload(self, orchestrator, batch, fields, backend):
        fields.address = "   "
        await orchestrator.submit(LIST_ID, fields, batch)

        payload = backend.calls_to("merge_spot")[0]
        assert payload["list_id"] == LIST_ID
        assert payload["spot_id"] is None
        assert payload["name"] == "Kebab Haus"
        assert payload["address"] is None
        assert payload["score"] == 8.5
        assert payload["criteria"]["Freshness"] == 0

    @pytest.mark.asyncio
    async def test_success_clears_draft(self, orchestrator, batch, fields, drafts):
        orchestrator.save_draft(LIST_ID, None, fields)
        assert drafts.load(draft_key(LIST_ID, None)) is not None

        await orchestrator.submit(LIST_ID, fields, batch)

        assert drafts.load(draft_key(LIST_ID, None)) is None

    @pytest.mark.asyncio
    async def test_state_sequence(self, orchestrator, batch, make_source, fields, channel):
        _add(batch, make_source, 1)
        recorder = EventRecorder(channel)

        await orchestrator.submit(LIST_ID, fields, batch)

        states = [e.state for e in recorder.of_type(SubmissionStateEvent)]
        assert states == [
            SubmissionState.IDLE,
            SubmissionState.MERGING,
            SubmissionState.UPLOADING_PHOTOS,
            SubmissionState.ALL_DONE,
        ]


class TestCompensation:
    @pytest.mark.asyncio
    async def test_second_photo_fails_in_create_mode(self, orchestrator, batch, previews, make_source, fields, backend, storage, notifier):
        ids = _add(batch, make_source, 3)
        backend.fail("add_spot_photo", RuntimeError("insert rejected"), on_call=2)

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.FAILED
        assert isinstance(result.error, MetadataRegistrationError)
        assert result.entry_statuses == {
            ids[0]: EntryStatus.SUCCESS,
            ids[1]: EntryStatus.ERROR,
            ids[2]: EntryStatus.PENDING,
        }
        assert len(backend.calls_to("delete_spot_photo")) == 1
        assert len(backend.calls_to("delete_spot")) == 1
        assert result.spot_id is None
        # nothing left behind on either side
        assert backend.spots == {}
        assert backend.photos == {}
        assert storage.objects == {}
        # entries kept for retry, back to pending
        assert batch.entry_ids == ids
        assert all(e.status == EntryStatus.PENDING and e.error is None for e in batch)
        assert previews.active_count == 3
        assert not batch.locked
        message, kind = notifier.notify.call_args.args
        assert kind == "error"
        assert "insert rejected" in message
        notifier.navigate_back.assert_not_called()

    @pytest.mark.asyncio
    async def test_fail_fast_issues_k_minus_one_deletes(self, orchestrator, batch, make_source, fields, backend):
        ids = _add(batch, make_source, 5)
        backend.fail("add_spot_photo", RuntimeError("boom"), on_call=4)

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert [result.entry_statuses[i] for i in ids] == [
            EntryStatus.SUCCESS,
            EntryStatus.SUCCESS,
            EntryStatus.SUCCESS,
            EntryStatus.ERROR,
            EntryStatus.PENDING,
        ]
        assert len(backend.calls_to("delete_spot_photo")) == 3

    @pytest.mark.asyncio
    async def test_edit_mode_never_deletes_spot(self, orchestrator, batch, make_source, fields, backend, storage, existing_spot):
        _add(batch, make_source, 2)
        backend.fail("add_spot_photo", RuntimeError("boom"), on_call=2)

        result = await orchestrator.submit(LIST_ID, fields, batch, spot_id=existing_spot)

        assert result.state == SubmissionState.FAILED
        assert result.spot_id == existing_spot
        assert backend.calls_to("delete_spot") == []
        assert existing_spot in backend.spots
        assert backend.photos == {}
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_create_mode_matching_existing_spot_is_not_deleted(self, orchestrator, batch, make_source, fields, backend, existing_spot):
        fields.name = "Existing Spot"
        _add(batch, make_source, 1)
        backend.fail("add_spot_photo", RuntimeError("boom"))

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.FAILED
        assert result.created is False
        assert existing_spot in backend.spots
        assert backend.calls_to("delete_spot") == []

    @pytest.mark.asyncio
    async def test_first_photo_failure_only_rolls_back_spot(self, orchestrator, batch, make_source, fields, backend, storage):
        _add(batch, make_source, 2)
        storage.fail("put", ConnectionError("offline"))

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.FAILED
        assert backend.calls_to("delete_spot_photo") == []
        assert len(backend.calls_to("delete_spot")) == 1
        assert backend.spots == {}

    @pytest.mark.asyncio
    async def test_compensation_failures_are_swallowed(self, orchestrator, batch, make_source, fields, backend):
        _add(batch, make_source, 3)
        backend.fail("add_spot_photo", RuntimeError("upload broke"), on_call=3)
        backend.fail("delete_spot_photo", RuntimeError("delete broke"))
        backend.fail("delete_spot", RuntimeError("rollback broke"))

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.FAILED
        assert "upload broke" in str(result.error)
        assert len(backend.calls_to("delete_spot_photo")) == 2
        assert result.spot_id is not None

    @pytest.mark.asyncio
    async def test_state_sequence_on_failure(self, orchestrator, batch, make_source, fields, backend, channel):
        _add(batch, make_source, 1)
        backend.fail("add_spot_photo", RuntimeError("boom"))
        recorder = EventRecorder(channel)

        await orchestrator.submit(LIST_ID, fields, batch)

        states = [e.state for e in recorder.of_type(SubmissionStateEvent)]
        assert states[-3:] == [
            SubmissionState.UPLOADING_PHOTOS,
            SubmissionState.COMPENSATING,
            SubmissionState.FAILED,
        ]
        assert orchestrator.state == SubmissionState.FAILED

    @pytest.mark.asyncio
    async def test_retry_after_failure_uploads_fresh(self, orchestrator, batch, make_source, fields, backend, storage):
        _add(batch, make_source, 2)
        backend.fail("add_spot_photo", RuntimeError("flaky"), on_call=2)

        first = await orchestrator.submit(LIST_ID, fields, batch)
        second = await orchestrator.submit(LIST_ID, fields, batch)

        assert first.state == SubmissionState.FAILED
        assert second.state == SubmissionState.ALL_DONE
        assert len(second.photos) == 2
        assert len(storage.objects) == 2
        assert len(backend.photos) == 2


class TestMergeAndValidation:
    @pytest.mark.asyncio
    async def test_merge_failure_is_terminal(self, orchestrator, batch, make_source, fields, backend, storage, notifier):
        ids = _add(batch, make_source, 2)
        backend.fail("merge_spot", PermissionError("not a member"))

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.MERGE_FAILED
        assert isinstance(result.error, MergeRejectedError)
        assert storage.calls == []
        assert backend.calls_to("add_spot_photo") == []
        assert backend.calls_to("delete_spot") == []
        assert batch.statuses() == {i: EntryStatus.PENDING for i in ids}
        notifier.notify.assert_called_once_with("not a member", "error")

    @pytest.mark.asyncio
    async def test_invalid_form_makes_no_remote_call(self, orchestrator, batch, backend, notifier):
        fields = SpotFields(name=" A ", category=None, ratings={"a": 5, "b": 0})

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.state == SubmissionState.IDLE
        assert set(result.field_errors) == {"name", "ratings", "category"}
        assert isinstance(result.error, ValidationError)
        assert result.error.field_errors == result.field_errors
        assert backend.calls == []
        notifier.notify.assert_not_called()

    @pytest.mark.asyncio
    async def test_batch_is_locked_during_upload(self, orchestrator, batch, make_source, fields, channel):
        _add(batch, make_source, 1)
        seen = []

        def try_to_add(event):
            if event.status == EntryStatus.UPLOADING:
                try:
                    batch.add_files([make_source(10, 10)])
                except BatchLockedError as ex:
                    seen.append(ex)

        channel.subscribe(EntryStatusEvent, try_to_add)

        result = await orchestrator.submit(LIST_ID, fields, batch)

        assert result.ok
        assert len(seen) == 1


class TestSingleActions:
    @pytest.mark.asyncio
    async def test_delete_spot(self, orchestrator, backend, existing_spot, notifier):
        assert await orchestrator.delete_spot(LIST_ID, existing_spot) is True
        assert existing_spot not in backend.spots
        notifier.navigate_back.assert_called_once_with(LIST_ID)

    @pytest.mark.asyncio
    async def test_delete_spot_failure_is_reported(self, orchestrator, notifier):
        assert await orchestrator.delete_spot(LIST_ID, "missing") is False
        assert notifier.notify.call_args.args[1] == "error"
        notifier.navigate_back.assert_not_called()

    @pytest.mark.asyncio
    async def test_remove_rating(self, orchestrator, backend, existing_spot):
        assert await orchestrator.remove_rating(LIST_ID, existing_spot) is True
        assert existing_spot not in backend.ratings
        assert existing_spot in backend.spots

    def test_draft_round_trip(self, orchestrator, fields):
        orchestrator.save_draft(LIST_ID, "spot-9", fields)

        restored = orchestrator.load_draft(LIST_ID, "spot-9")

        assert restored == fields
        assert orchestrator.load_draft(LIST_ID, None) is None
