"""On-disk preview handles for selected photos.

Each selected file gets its own preview file under the preview cache
directory; the path is what a UI shows while the photo is pending. Handles
are owned by a single photo entry and must be released when the entry goes
away, otherwise the file stays behind.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
import tempfile
import uuid

from loguru import logger

from core.models import PreviewRef, SourceFile

_SUFFIXES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/heic": ".heic",
    "image/heif": ".heif",
}


def _compute_preview_key(source: SourceFile) -> str:
    """Unique key per acquire call; two entries of the same file never share a handle."""
    sig = f"{source.name}|{source.size_bytes}|{uuid.uuid4().hex}".encode(
        "utf-8", errors="ignore"
    )
    return hashlib.sha1(sig).hexdigest()


def _ensure_dir(p: Path) -> None:
    """Create directory `p` if missing (including parents)."""
    p.mkdir(parents=True, exist_ok=True)


class PreviewStore:
    """Writes preview files and tracks which handles are still live."""

    def __init__(self, settings: object | None = None, cache_dir: str | Path | None = None) -> None:
        raw_dir: str | Path | None = cache_dir
        if raw_dir is None and settings is not None:
            value = settings.get("preview.cache_dir", None)
            if isinstance(value, str) and value:
                raw_dir = os.path.expanduser(os.path.expandvars(value))
        if raw_dir is None:
            raw_dir = Path(tempfile.gettempdir()) / "spotshare" / "previews"
        self._dir = Path(raw_dir)
        _ensure_dir(self._dir)
        self._active: dict[str, PreviewRef] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def active_count(self) -> int:
        """Number of acquired handles not yet released."""
        return len(self._active)

    def is_active(self, ref: PreviewRef) -> bool:
        return ref.key in self._active

    def acquire(self, source: SourceFile) -> PreviewRef:
        key = _compute_preview_key(source)
        suffix = _SUFFIXES.get(source.normalized_type, ".bin")
        path = self._dir / f"{key}{suffix}"
        path.write_bytes(source.data)
        ref = PreviewRef(key=key, path=str(path))
        self._active[key] = ref
        logger.debug("Preview acquired for {}: {}", source.name, path)
        return ref

    def release(self, ref: PreviewRef) -> None:
        if self._active.pop(ref.key, None) is None:
            return
        try:
            Path(ref.path).unlink(missing_ok=True)
        except OSError as ex:
            logger.warning("Preview file could not be removed {}: {}", ref.path, ex)

    def release_all(self) -> None:
        for ref in list(self._active.values()):
            self.release(ref)
