"""Photo upload, registration, and deletion against storage and spot RPCs.

An upload is three ordered side effects: put the blob, resolve its public
URL, register the metadata row. When either of the last two fails the blob is
removed again before the error propagates, so callers only ever observe
"blob and row both exist" or "neither exists".
"""

from __future__ import annotations

import asyncio
import uuid

from loguru import logger

from core.errors import (
    MetadataRegistrationError,
    PhotoDeleteError,
    StorageUploadError,
    TransportError,
    UrlResolutionError,
)
from core.models import NormalizedImage, SourceFile, UploadedPhoto
from core.services.interfaces import IBlobStorage, ISpotBackend, ProgressCallback

DEFAULT_BUCKET = "list-covers"


def build_storage_path(list_id: str, spot_id: str, extension: str) -> str:
    """Return a fresh storage path `shared-lists/<list>/spots/<spot>/<token>.<ext>`."""
    return f"shared-lists/{list_id}/spots/{spot_id}/{uuid.uuid4()}.{extension}"


class _ProgressReporter:
    """Turns (loaded, total) byte counts into a non-decreasing percentage."""

    def __init__(self, on_progress: ProgressCallback | None) -> None:
        self._on_progress = on_progress
        self._last = -1

    def __call__(self, loaded: float, total: float) -> None:
        if self._on_progress is None:
            return
        if not isinstance(loaded, (int, float)) or not isinstance(total, (int, float)) or total <= 0:
            return
        percent = max(0, min(100, round(loaded / total * 100)))
        if percent <= self._last:
            return
        self._last = percent
        self._on_progress(percent)


class PhotoUploadService:
    """Uploads, deletes, and re-covers spot photos."""

    def __init__(
        self,
        storage: IBlobStorage,
        backend: ISpotBackend,
        normalizer: object | None = None,
        settings: object | None = None,
    ) -> None:
        self._storage = storage
        self._backend = backend
        self._normalizer = normalizer
        self._bucket = DEFAULT_BUCKET
        if settings is not None:
            raw = settings.get("storage.bucket", DEFAULT_BUCKET)
            if isinstance(raw, str) and raw:
                self._bucket = raw

    @property
    def bucket(self) -> str:
        return self._bucket

    async def upload_source(
        self,
        list_id: str,
        spot_id: str,
        source: SourceFile,
        is_cover: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> UploadedPhoto:
        """Normalize `source` off the event loop, then `upload` it."""
        if self._normalizer is None:
            raise RuntimeError("PhotoUploadService was created without a normalizer")
        image = await asyncio.to_thread(self._normalizer.normalize, source)
        return await self.upload(list_id, spot_id, image, is_cover, on_progress)

    async def upload(
        self,
        list_id: str,
        spot_id: str,
        image: NormalizedImage,
        is_cover: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> UploadedPhoto:
        """Store `image` and register it as a photo of `spot_id`.

        Raises:
            ValueError: `list_id` or `spot_id` missing.
            StorageUploadError: blob upload failed (nothing to undo).
            UrlResolutionError: no public URL; the blob was removed.
            MetadataRegistrationError: row insert failed; the blob was removed.
        """
        if not list_id or not spot_id:
            raise ValueError("list_id and spot_id are required")

        storage_path = build_storage_path(list_id, spot_id, image.extension)
        reporter = _ProgressReporter(on_progress)

        try:
            await self._storage.put(
                self._bucket, storage_path, image.data, image.mime_type, on_progress=reporter
            )
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Storage upload failed for {}: {}", storage_path, ex)
            raise StorageUploadError(f"Upload failed: {ex}") from ex

        try:
            public_url = await self._storage.get_public_url(self._bucket, storage_path)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            await self._discard_blob(storage_path)
            raise UrlResolutionError(f"Could not resolve public URL: {ex}") from ex
        if not public_url:
            await self._discard_blob(storage_path)
            raise UrlResolutionError(f"Could not resolve public URL for {storage_path}")

        payload = {
            "list_id": list_id,
            "spot_id": spot_id,
            "storage_path": storage_path,
            "public_url": public_url,
            "width": image.width,
            "height": image.height,
            "size_bytes": image.size_bytes,
            "mime_type": image.mime_type,
            "set_as_cover": bool(is_cover),
        }
        try:
            row = await self._backend.add_spot_photo(payload)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            await self._discard_blob(storage_path)
            raise MetadataRegistrationError(f"Photo could not be registered: {ex}") from ex
        if not row or not row.get("id"):
            await self._discard_blob(storage_path)
            raise MetadataRegistrationError("Photo registration returned no id")

        if on_progress is not None:
            reporter(1, 1)
        logger.info("Photo {} uploaded to {}", row["id"], storage_path)
        return UploadedPhoto(
            id=str(row["id"]),
            storage_path=str(row.get("storage_path") or storage_path),
            public_url=str(row.get("public_url") or public_url),
            width=int(row.get("width") or image.width),
            height=int(row.get("height") or image.height),
            size_bytes=int(row.get("size_bytes") or image.size_bytes),
            mime_type=str(row.get("mime_type") or image.mime_type),
            is_cover=bool(row.get("is_cover", is_cover)),
        )

    async def delete_photo(self, photo_id: str) -> dict:
        """Delete a photo row, then remove its blob best-effort.

        Raises:
            PhotoDeleteError: the delete-photo procedure failed.
        """
        try:
            data = await self._backend.delete_spot_photo(photo_id)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise PhotoDeleteError(f"Photo {photo_id} could not be deleted: {ex}") from ex
        result = data[0] if isinstance(data, list) and data else data
        storage_path = (result or {}).get("storage_path")
        if storage_path:
            await self._discard_blob(storage_path)
        logger.info("Photo {} deleted", photo_id)
        return result or {}

    async def set_cover_photo(self, photo_id: str) -> dict:
        try:
            return await self._backend.set_spot_cover_photo(photo_id)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            raise TransportError(f"Cover photo could not be set: {ex}") from ex

    async def _discard_blob(self, storage_path: str) -> None:
        """Single best-effort removal; failures are logged, never raised."""
        try:
            await self._storage.remove(self._bucket, [storage_path])
            logger.warning("Removed blob {}", storage_path)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Blob {} could not be removed, left orphaned: {}", storage_path, ex)
