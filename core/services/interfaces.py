"""Core service interfaces and shared data structures.

This module defines the collaborator interfaces (blob storage, spot RPCs,
draft persistence, user notification) and the dataclasses that describe batch
and submission outcomes shared across the infrastructure and UI layers.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from core.models import EntryStatus, PreviewRef, SourceFile, UploadedPhoto

# (bytes_loaded, bytes_total); transports may report floats
TransferCallback = Callable[[float, float], None]
# percent 0..100
ProgressCallback = Callable[[int], None]


@dataclass
class AllSucceeded:
    """Every entry in the batch was uploaded and registered.

    Attributes:
        photos: Confirmed photos in upload (insertion) order.
    """

    photos: list[UploadedPhoto] = field(default_factory=list)


@dataclass
class Aborted:
    """The batch stopped at the first failing entry.

    Attributes:
        error: The failure that stopped the run.
        failed_entry_id: Entry that was uploading when the failure happened.
        uploaded: Photos confirmed earlier in this run; the caller compensates them.
        succeeded_entry_ids: Local ids of the entries behind `uploaded`.
    """

    error: Exception
    failed_entry_id: str | None
    uploaded: list[UploadedPhoto] = field(default_factory=list)
    succeeded_entry_ids: list[str] = field(default_factory=list)

    @property
    def uploaded_photo_ids(self) -> list[str]:
        """Server ids of photos to compensate."""
        return [p.id for p in self.uploaded]


BatchOutcome = AllSucceeded | Aborted


class SubmissionState(str, Enum):
    """States of the submission saga."""

    IDLE = "idle"
    MERGING = "merging"
    MERGE_FAILED = "merge_failed"
    UPLOADING_PHOTOS = "uploading_photos"
    ALL_DONE = "all_done"
    COMPENSATING = "compensating"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SubmissionState.MERGE_FAILED,
            SubmissionState.ALL_DONE,
            SubmissionState.FAILED,
        )


@dataclass
class SubmissionResult:
    """Outcome of one submit attempt.

    Attributes:
        state: Final state; `IDLE` when local validation failed.
        spot_id: Spot identity after the merge (None if the merge never succeeded
            or a created spot was rolled back).
        created: True when this submission created the spot.
        photos: Confirmed photos (only on `ALL_DONE`).
        field_errors: Validation messages keyed by form field.
        error: Outermost failure, if any.
        entry_statuses: Entry id -> status at the moment the photo batch finished,
            taken before any compensation reset.
    """

    state: SubmissionState
    spot_id: str | None = None
    created: bool = False
    photos: list[UploadedPhoto] = field(default_factory=list)
    field_errors: dict[str, str] = field(default_factory=dict)
    error: Exception | None = None
    entry_statuses: dict[str, EntryStatus] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == SubmissionState.ALL_DONE

    @property
    def message(self) -> str | None:
        """Single user-facing message naming the outermost failure."""
        if self.error is not None:
            return str(self.error) or type(self.error).__name__
        if self.field_errors:
            return next(iter(self.field_errors.values()))
        return None


class IBlobStorage:
    """Interface for the object storage service."""

    async def put(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: TransferCallback | None = None,
    ) -> None:
        """Store `data` at `path`; must not overwrite an existing object."""
        raise NotImplementedError

    async def get_public_url(self, bucket: str, path: str) -> str | None:
        """Return a publicly resolvable URL for `path`, or None."""
        raise NotImplementedError

    async def remove(self, bucket: str, paths: list[str]) -> None:
        """Delete objects at `paths` (best-effort)."""
        raise NotImplementedError


class IPhotoUploader:
    """Interface for the single-photo upload unit."""

    async def upload_source(
        self,
        list_id: str,
        spot_id: str,
        source: SourceFile,
        is_cover: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> UploadedPhoto:
        """Normalize and upload `source`; leaves blob and row both present or both absent."""
        raise NotImplementedError

    async def delete_photo(self, photo_id: str) -> dict[str, Any]:
        """Delete a confirmed photo row and its blob."""
        raise NotImplementedError


class ISpotBackend:
    """Interface for the atomic remote procedures on spots and photos.

    Every method is a single atomic call. Payload and response keys follow
    the procedure contracts (`list_id`, `spot_id`, `storage_path`, ...).
    """

    async def merge_spot(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create or update a spot and the caller's rating; returns `{"id": ...}`."""
        raise NotImplementedError

    async def add_spot_photo(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert photo metadata; returns the stored row including `id`."""
        raise NotImplementedError

    async def delete_spot_photo(self, photo_id: str) -> dict[str, Any]:
        """Delete photo metadata; returns `{"storage_path": ...}`."""
        raise NotImplementedError

    async def set_spot_cover_photo(self, photo_id: str) -> dict[str, Any]:
        """Mark `photo_id` as its spot's cover."""
        raise NotImplementedError

    async def delete_spot(self, spot_id: str) -> None:
        """Delete a spot record."""
        raise NotImplementedError

    async def delete_spot_rating(self, spot_id: str) -> None:
        """Delete the caller's rating of a spot."""
        raise NotImplementedError


class IPreviewStore:
    """Creates and releases transient preview handles for selected files."""

    def acquire(self, source: SourceFile) -> PreviewRef:
        """Create a preview handle for `source`; the caller owns it."""
        raise NotImplementedError

    def release(self, ref: PreviewRef) -> None:
        """Release a handle returned by `acquire`; releasing twice is a no-op."""
        raise NotImplementedError


class IDraftStore:
    """Scoped key-value persistence for unfinished forms."""

    def load(self, key: str) -> dict[str, Any] | None:
        """Return the stored draft for `key`, or None."""
        raise NotImplementedError

    def save(self, key: str, value: dict[str, Any]) -> None:
        """Store `value` under `key`, replacing any previous draft."""
        raise NotImplementedError

    def clear(self, key: str) -> None:
        """Remove the draft under `key` if present."""
        raise NotImplementedError


class INotifier:
    """Surface for user-visible side effects (toasts and navigation)."""

    def notify(self, message: str, kind: str = "success") -> None:
        """Show a transient status message; `kind` is success, error or info."""
        raise NotImplementedError

    def navigate_back(self, list_id: str) -> None:
        """Leave the form and return to the list screen."""
        raise NotImplementedError
