"""Submission saga: merge the spot, upload its photos, compensate on failure.

Storage and the row store share no transaction, so a failed photo upload is
undone by explicit compensating calls:

1. delete every photo registered during this run (in parallel),
2. delete the spot if this submission created it,
3. put the local entries back to pending so the user can retry.

Compensation never raises; the error reported to the user is always the one
that stopped the upload.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from core.errors import MergeRejectedError, ValidationError
from core.models import SpotFields
from core.services.batch_upload import BatchUploadCoordinator
from core.services.events import EventChannel, SubmissionStateEvent
from core.services.interfaces import (
    Aborted,
    AllSucceeded,
    IDraftStore,
    INotifier,
    IPhotoUploader,
    ISpotBackend,
    SubmissionResult,
    SubmissionState,
)
from core.services.photo_batch import PhotoBatch
from core.services.rating import validate_fields
from core.services.spot_merge import SpotMergeTransaction


def draft_key(list_id: str, spot_id: str | None) -> str:
    return f"spot-draft:{list_id}:{spot_id or 'new'}"


class SubmissionOrchestrator:
    """Drives one spot form through the submission state machine."""

    def __init__(
        self,
        backend: ISpotBackend,
        uploader: IPhotoUploader,
        channel: EventChannel | None = None,
        notifier: INotifier | None = None,
        drafts: IDraftStore | None = None,
        merger: SpotMergeTransaction | None = None,
        coordinator: BatchUploadCoordinator | None = None,
    ) -> None:
        self._backend = backend
        self._uploader = uploader
        self._channel = channel or EventChannel()
        self._notifier = notifier
        self._drafts = drafts
        self._merger = merger or SpotMergeTransaction(backend)
        self._coordinator = coordinator or BatchUploadCoordinator(uploader, self._channel)
        self._state = SubmissionState.IDLE

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def channel(self) -> EventChannel:
        return self._channel

    async def submit(
        self,
        list_id: str,
        fields: SpotFields,
        batch: PhotoBatch,
        spot_id: str | None = None,
        cover_selection_id: str | None = None,
    ) -> SubmissionResult:
        """Run the full saga for one press of the submit button.

        `spot_id` is the existing spot in edit mode and None in create mode.
        `cover_selection_id` defaults to the batch's current cover.

        Raises:
            BatchLockedError: another submission on `batch` is still running.
        """
        self._set_state(SubmissionState.IDLE)
        field_errors = validate_fields(fields)
        if field_errors:
            logger.info("Submission blocked by validation: {}", field_errors)
            return SubmissionResult(
                state=SubmissionState.IDLE,
                spot_id=spot_id,
                field_errors=field_errors,
                error=ValidationError(field_errors),
            )

        if cover_selection_id is None:
            cover_selection_id = batch.cover_id

        with batch.submitting():
            batch.reset_all()
            self._set_state(SubmissionState.MERGING, spot_id)
            try:
                merged = await self._merger.merge_with_status(list_id, spot_id, fields)
            except MergeRejectedError as ex:
                self._set_state(SubmissionState.MERGE_FAILED, spot_id)
                self._notify(str(ex) or "Saving failed. Please try again.", "error")
                return SubmissionResult(
                    state=SubmissionState.MERGE_FAILED, spot_id=spot_id, error=ex
                )

            merged_id, created = merged.spot_id, merged.created
            self._set_state(SubmissionState.UPLOADING_PHOTOS, merged_id)
            outcome = await self._coordinator.run(batch, list_id, merged_id, cover_selection_id)
            statuses = batch.statuses()

            if isinstance(outcome, AllSucceeded):
                batch.flush()
                self._set_state(SubmissionState.ALL_DONE, merged_id)
                result = SubmissionResult(
                    state=SubmissionState.ALL_DONE,
                    spot_id=merged_id,
                    created=created,
                    photos=list(outcome.photos),
                    entry_statuses=statuses,
                )
            else:
                self._set_state(SubmissionState.COMPENSATING, merged_id)
                rolled_back = await self._compensate(outcome, merged_id if created else None)
                batch.reset_all()
                self._set_state(SubmissionState.FAILED, merged_id)
                result = SubmissionResult(
                    state=SubmissionState.FAILED,
                    spot_id=None if rolled_back else merged_id,
                    created=created,
                    error=outcome.error,
                    entry_statuses=statuses,
                )

        if result.ok:
            if self._drafts is not None:
                self._drafts.clear(draft_key(list_id, spot_id))
            self._notify("Spot updated" if spot_id else "Spot added", "success")
            if self._notifier is not None:
                self._notifier.navigate_back(list_id)
        else:
            self._notify(result.message or "Saving failed. Please try again.", "error")
        return result

    # Explicit single-call actions
    async def delete_spot(self, list_id: str, spot_id: str) -> bool:
        """Delete a spot on user request; returns True on success."""
        try:
            await self._backend.delete_spot(spot_id)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Deleting spot {} failed: {}", spot_id, ex)
            self._notify(str(ex) or "Spot could not be deleted.", "error")
            return False
        logger.info("Spot {} deleted from list {}", spot_id, list_id)
        self._notify("Spot deleted", "success")
        if self._notifier is not None:
            self._notifier.navigate_back(list_id)
        return True

    async def remove_rating(self, list_id: str, spot_id: str) -> bool:
        """Remove the current user's rating of a spot; returns True on success."""
        try:
            await self._backend.delete_spot_rating(spot_id)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Removing rating of spot {} failed: {}", spot_id, ex)
            self._notify(str(ex) or "Rating could not be removed.", "error")
            return False
        self._notify("Rating removed", "success")
        if self._notifier is not None:
            self._notifier.navigate_back(list_id)
        return True

    # Draft persistence
    def save_draft(self, list_id: str, spot_id: str | None, fields: SpotFields) -> None:
        if self._drafts is not None:
            self._drafts.save(draft_key(list_id, spot_id), fields.to_dict())

    def load_draft(self, list_id: str, spot_id: str | None) -> SpotFields | None:
        if self._drafts is None:
            return None
        data = self._drafts.load(draft_key(list_id, spot_id))
        return SpotFields.from_dict(data) if data else None

    # Internal helpers
    async def _compensate(self, outcome: Aborted, created_spot_id: str | None) -> bool:
        """Undo this run's photos and, in create mode, the spot; returns True if the spot was deleted."""
        photo_ids = outcome.uploaded_photo_ids
        if photo_ids:
            logger.warning("Compensating {} uploaded photo(s)", len(photo_ids))
            results = await asyncio.gather(
                *(self._uploader.delete_photo(pid) for pid in photo_ids), return_exceptions=True
            )
            for pid, res in zip(photo_ids, results):
                if isinstance(res, Exception):
                    logger.error("Compensating delete of photo {} failed: {}", pid, res)

        if created_spot_id is None:
            return False
        logger.warning("Rolling back newly created spot {}", created_spot_id)
        try:
            await self._backend.delete_spot(created_spot_id)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Rollback of spot {} failed: {}", created_spot_id, ex)
            return False
        return True

    def _set_state(self, state: SubmissionState, spot_id: str | None = None) -> None:
        if state != self._state:
            logger.info("Submission {} -> {}", self._state.value, state.value)
        self._state = state
        self._channel.publish(SubmissionStateEvent(state=state, spot_id=spot_id))

    def _notify(self, message: str, kind: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(message, kind)
