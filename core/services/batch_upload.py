"""Sequential upload of a photo batch with fail-fast semantics."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from core.models import EntryStatus, UploadedPhoto
from core.services.events import EntryProgressEvent, EntryStatusEvent, EventChannel
from core.services.interfaces import Aborted, AllSucceeded, BatchOutcome, IPhotoUploader
from core.services.photo_batch import PhotoBatch

DEFAULT_FAILURE_MESSAGE = "Upload failed"


def resolve_cover_id(entry_ids: Sequence[str], cover_id: str | None) -> str | None:
    """Return `cover_id` if it names an entry, else the first entry, else None."""
    if not entry_ids:
        return None
    if cover_id is not None and cover_id in entry_ids:
        return cover_id
    return entry_ids[0]


class BatchUploadCoordinator:
    """Runs one upload unit per entry, strictly in insertion order.

    The coordinator owns entry status during a run and reports every
    transition on the event channel. It stops at the first failure and hands
    the already-confirmed photos back to the caller; deleting them is the
    caller's job.
    """

    def __init__(self, uploader: IPhotoUploader, channel: EventChannel | None = None) -> None:
        self._uploader = uploader
        self._channel = channel or EventChannel()

    @property
    def channel(self) -> EventChannel:
        return self._channel

    async def run(
        self,
        batch: PhotoBatch,
        list_id: str,
        spot_id: str,
        cover_selection_id: str | None = None,
    ) -> BatchOutcome:
        """Upload every entry of `batch` as photos of `spot_id`.

        Returns:
            `AllSucceeded` with photos in entry order, or `Aborted` describing
            the failing entry and the photos uploaded before it.
        """
        entries = batch.entries
        cover_id = resolve_cover_id([e.id for e in entries], cover_selection_id)
        uploaded: list[UploadedPhoto] = []
        succeeded: list[str] = []

        logger.info("Uploading {} photo(s) for spot {}", len(entries), spot_id)
        for position, entry in enumerate(entries, start=1):
            self._transition(batch, entry.id, EntryStatus.UPLOADING, progress=0, error=None)
            logger.debug("Uploading entry {} ({}/{}): {}", entry.id, position, len(entries), entry.name)

            def _on_progress(percent: int, entry_id: str = entry.id) -> None:
                if batch.set_progress(entry_id, percent) is not None:
                    self._channel.publish(EntryProgressEvent(entry_id=entry_id, progress=percent))

            try:
                photo = await self._uploader.upload_source(
                    list_id,
                    spot_id,
                    entry.source,
                    is_cover=(entry.id == cover_id),
                    on_progress=_on_progress,
                )
            except Exception as ex:  # pylint: disable=broad-exception-caught
                message = str(ex) or DEFAULT_FAILURE_MESSAGE
                self._transition(batch, entry.id, EntryStatus.ERROR, progress=0, error=message)
                logger.error(
                    "Photo {}/{} ({}) failed, stopping batch: {}", position, len(entries), entry.name, ex
                )
                return Aborted(
                    error=ex,
                    failed_entry_id=entry.id,
                    uploaded=uploaded,
                    succeeded_entry_ids=succeeded,
                )

            uploaded.append(photo)
            succeeded.append(entry.id)
            self._transition(batch, entry.id, EntryStatus.SUCCESS, progress=100, error=None)

        logger.info("All {} photo(s) uploaded for spot {}", len(uploaded), spot_id)
        return AllSucceeded(photos=uploaded)

    def _transition(
        self,
        batch: PhotoBatch,
        entry_id: str,
        status: EntryStatus,
        progress: int,
        error: str | None,
    ) -> None:
        batch.update(entry_id, status=status, progress=progress, error=error)
        self._channel.publish(EntryStatusEvent(entry_id=entry_id, status=status, error=error))
