"""Core domain models for spots, photo entries, and uploaded photos."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import mimetypes
from pathlib import Path

JPEG_MIME = "image/jpeg"
PNG_MIME = "image/png"
HEIC_MIME = "image/heic"
HEIF_MIME = "image/heif"

SUPPORTED_IMAGE_TYPES = (JPEG_MIME, PNG_MIME, HEIC_MIME, HEIF_MIME)
CANONICAL_IMAGE_TYPES = (JPEG_MIME, PNG_MIME)

MAX_SPOT_PHOTOS = 8
MAX_UPLOAD_SIZE_BYTES = 10 * 1024 * 1024

# mimetypes does not know HEIC/HEIF on every platform
_EXTENSION_TYPES = {
    ".jpg": JPEG_MIME,
    ".jpeg": JPEG_MIME,
    ".png": PNG_MIME,
    ".heic": HEIC_MIME,
    ".heif": HEIF_MIME,
}


class EntryStatus(str, Enum):
    """Lifecycle of a single photo entry within a submission."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SourceFile:
    """A user-selected file: raw bytes plus its declared media type."""

    name: str
    data: bytes
    media_type: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def normalized_type(self) -> str:
        """Declared media type, lower-cased and stripped."""
        return (self.media_type or "").strip().lower()

    @classmethod
    def from_path(cls, path: str | Path, media_type: str | None = None) -> SourceFile:
        """Read `path` from disk, guessing the media type from its extension."""
        p = Path(path)
        if media_type is None:
            media_type = _EXTENSION_TYPES.get(p.suffix.lower())
            if media_type is None:
                media_type = mimetypes.guess_type(p.name)[0] or "application/octet-stream"
        return cls(name=p.name, data=p.read_bytes(), media_type=media_type)


@dataclass(frozen=True)
class PreviewRef:
    """Handle to a transient preview resource owned by one photo entry."""

    key: str
    path: str


@dataclass(frozen=True)
class PhotoEntry:
    """Client-side intent to attach one photo, tracked through a submission.

    Entries are values: status changes produce new instances via
    `dataclasses.replace` and are written back into the owning batch.
    """

    id: str
    source: SourceFile
    preview: PreviewRef | None = None
    status: EntryStatus = EntryStatus.PENDING
    progress: int = 0
    error: str | None = None

    @property
    def name(self) -> str:
        return self.source.name


@dataclass(frozen=True)
class NormalizedImage:
    """Canonical encoded image ready for upload."""

    data: bytes
    width: int
    height: int
    size_bytes: int
    mime_type: str

    @property
    def extension(self) -> str:
        """File extension used for storage paths."""
        return "png" if self.mime_type == PNG_MIME else "jpg"


@dataclass(frozen=True)
class UploadedPhoto:
    """Server-confirmed photo row; the client holds a read-only copy."""

    id: str
    storage_path: str
    public_url: str
    width: int
    height: int
    size_bytes: int
    mime_type: str
    is_cover: bool = False


@dataclass
class SpotFields:
    """User-entered form values for a spot and the current user's rating."""

    name: str = ""
    category: str | None = None
    address: str = ""
    description: str = ""
    comment: str = ""
    # criterion name -> rating (0 means "not rated")
    ratings: dict[str, int] = field(default_factory=dict)
    cover_photo_url: str | None = None
    phone: str | None = None
    website: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "category": self.category,
            "address": self.address,
            "description": self.description,
            "comment": self.comment,
            "ratings": dict(self.ratings),
            "cover_photo_url": self.cover_photo_url,
            "phone": self.phone,
            "website": self.website,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SpotFields:
        raw_ratings = data.get("ratings") or {}
        ratings: dict[str, int] = {}
        if isinstance(raw_ratings, dict):
            for key, value in raw_ratings.items():
                try:
                    ratings[str(key)] = int(value or 0)
                except (ValueError, TypeError):
                    ratings[str(key)] = 0
        return cls(
            name=str(data.get("name") or ""),
            category=data.get("category") or None,
            address=str(data.get("address") or ""),
            description=str(data.get("description") or ""),
            comment=str(data.get("comment") or ""),
            ratings=ratings,
            cover_photo_url=data.get("cover_photo_url") or None,
            phone=data.get("phone") or None,
            website=data.get("website") or None,
        )
