"""In-memory batch of photo entries awaiting submission.

Entries live in an arena keyed by their local id; insertion order is kept
separately. Status and progress changes replace the entry value in the arena,
so a late progress update for an entry that was removed in the meantime is
simply dropped.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
import uuid

from loguru import logger

from core.errors import BatchFullError, BatchLockedError
from core.models import (
    MAX_SPOT_PHOTOS,
    SUPPORTED_IMAGE_TYPES,
    EntryStatus,
    PhotoEntry,
    SourceFile,
)
from core.services.interfaces import IPreviewStore


REJECTED_TYPE_MESSAGE = "Only JPG, PNG or HEIC files are allowed."
LIMIT_REACHED_MESSAGE = "Photo limit reached, extra files were ignored."


@dataclass
class AddFilesResult:
    """Outcome of adding a selection of files.

    Attributes:
        added: Entries created, in selection order.
        rejected: Files whose declared type is not supported.
        ignored: Supported files dropped because the batch ran out of slots.
    """

    added: list[PhotoEntry] = field(default_factory=list)
    rejected: list[SourceFile] = field(default_factory=list)
    ignored: list[SourceFile] = field(default_factory=list)

    @property
    def messages(self) -> list[tuple[str, str]]:
        """(kind, message) pairs suitable for status notifications."""
        out: list[tuple[str, str]] = []
        if self.rejected:
            out.append(("error", REJECTED_TYPE_MESSAGE))
        if self.ignored:
            out.append(("info", LIMIT_REACHED_MESSAGE))
        return out


def _new_entry_id() -> str:
    return uuid.uuid4().hex


class PhotoBatch:
    """Ordered, bounded set of `PhotoEntry` values with a single cover."""

    def __init__(self, previews: IPreviewStore | None = None, max_photos: int = MAX_SPOT_PHOTOS) -> None:
        self._previews = previews
        self._max_photos = max(1, int(max_photos))
        self._entries: dict[str, PhotoEntry] = {}
        self._order: list[str] = []
        self._cover_id: str | None = None
        self._locked = False

    # Read access
    def __len__(self) -> int:
        return len(self._order)

    def __iter__(self) -> Iterator[PhotoEntry]:
        return iter(self.entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __enter__(self) -> PhotoBatch:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def entries(self) -> list[PhotoEntry]:
        """Entries in insertion order."""
        return [self._entries[i] for i in self._order]

    @property
    def entry_ids(self) -> list[str]:
        return list(self._order)

    @property
    def cover_id(self) -> str | None:
        return self._cover_id

    @property
    def available_slots(self) -> int:
        return self._max_photos - len(self._order)

    @property
    def locked(self) -> bool:
        return self._locked

    def get(self, entry_id: str) -> PhotoEntry | None:
        return self._entries.get(entry_id)

    def statuses(self) -> dict[str, EntryStatus]:
        return {i: self._entries[i].status for i in self._order}

    # Membership (gated by the submission lock)
    def add_files(self, files: Iterable[SourceFile]) -> AddFilesResult:
        """Validate type and slot count, then create pending entries.

        Raises:
            BatchLockedError: a submission is running.
            BatchFullError: no slots are free and at least one file was supported.
        """
        self._ensure_unlocked()
        result = AddFilesResult()
        allowed: list[SourceFile] = []
        for source in files:
            if source.normalized_type in SUPPORTED_IMAGE_TYPES:
                allowed.append(source)
            else:
                result.rejected.append(source)
        if not allowed:
            return result

        slots = self.available_slots
        if slots <= 0:
            raise BatchFullError(
                f"Maximum of {self._max_photos} photos reached.", rejected=result.rejected
            )
        result.ignored = allowed[slots:]

        for source in allowed[:slots]:
            preview = self._previews.acquire(source) if self._previews is not None else None
            entry = PhotoEntry(id=_new_entry_id(), source=source, preview=preview)
            self._entries[entry.id] = entry
            self._order.append(entry.id)
            result.added.append(entry)

        if self._cover_id is None and self._order:
            self._cover_id = self._order[0]
        logger.debug(
            "Batch add: {} added, {} rejected, {} ignored",
            len(result.added),
            len(result.rejected),
            len(result.ignored),
        )
        return result

    def remove(self, entry_id: str) -> PhotoEntry | None:
        """Remove an entry, release its preview, and repair the cover."""
        self._ensure_unlocked()
        entry = self._entries.pop(entry_id, None)
        if entry is None:
            return None
        self._order.remove(entry_id)
        self._release(entry)
        if self._cover_id == entry_id:
            self._cover_id = self._order[0] if self._order else None
        return entry

    def mark_cover(self, entry_id: str) -> None:
        self._ensure_unlocked()
        if entry_id not in self._entries:
            raise KeyError(entry_id)
        self._cover_id = entry_id

    # Status updates (used by the coordinator while locked)
    def update(self, entry_id: str, **changes: object) -> PhotoEntry | None:
        """Replace the entry with a copy carrying `changes`; unknown ids are ignored."""
        entry = self._entries.get(entry_id)
        if entry is None:
            return None
        updated = replace(entry, **changes)
        self._entries[entry_id] = updated
        return updated

    def set_progress(self, entry_id: str, progress: int) -> PhotoEntry | None:
        """Raise progress of an uploading entry; lower values are ignored."""
        entry = self._entries.get(entry_id)
        if entry is None or entry.status != EntryStatus.UPLOADING:
            return None
        progress = max(0, min(100, int(progress)))
        if progress <= entry.progress:
            return None
        return self.update(entry_id, progress=progress)

    def reset_all(self) -> None:
        """Put every entry back to pending so the same files can be retried."""
        for entry_id in self._order:
            self.update(entry_id, status=EntryStatus.PENDING, progress=0, error=None)

    # Ownership
    def flush(self) -> list[PhotoEntry]:
        """Drop every entry after a successful submission, releasing previews."""
        flushed = self.entries
        for entry in flushed:
            self._release(entry)
        self._entries.clear()
        self._order.clear()
        self._cover_id = None
        return flushed

    def close(self) -> None:
        """Release every preview still held (screen teardown)."""
        for entry in self.entries:
            self._release(entry)

    @contextmanager
    def submitting(self) -> Iterator[PhotoBatch]:
        """Lock membership and cover selection for the duration of a run."""
        if self._locked:
            raise BatchLockedError("A submission is already running")
        self._locked = True
        try:
            yield self
        finally:
            self._locked = False

    def _ensure_unlocked(self) -> None:
        if self._locked:
            raise BatchLockedError("Photos cannot change while the spot is being saved")

    def _release(self, entry: PhotoEntry) -> None:
        if entry.preview is not None and self._previews is not None:
            self._previews.release(entry.preview)
