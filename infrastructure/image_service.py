"""Image normalization for photo uploads.

Converts a user-selected file (jpeg, png, heic, heif) into a canonical
upload image: HEIC/HEIF is decoded through Pillow with the pillow-heif opener
and re-encoded to JPEG, every image is bounded to a maximum edge length and
recompressed, and the size ceiling is enforced on the compressed bytes.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any

from PIL import Image, ImageOps
from loguru import logger

from core.errors import FileTooLargeError, ImageDecodeError, UnsupportedTypeError
from core.models import (
    HEIC_MIME,
    HEIF_MIME,
    JPEG_MIME,
    MAX_UPLOAD_SIZE_BYTES,
    PNG_MIME,
    SUPPORTED_IMAGE_TYPES,
    NormalizedImage,
    SourceFile,
)

try:  # pragma: no cover - optional dependency
    from pillow_heif import register_heif_opener  # type: ignore

    register_heif_opener()
    PIL_HEIF_AVAILABLE = True
except ImportError:  # pragma: no cover - optional dependency
    PIL_HEIF_AVAILABLE = False

DEFAULT_MAX_DIMENSION = 1920
DEFAULT_JPEG_QUALITY = 82
DEFAULT_HEIC_QUALITY = 90

_DECODE_ERRORS = (OSError, ValueError, Image.DecompressionBombError)


def _resample() -> Any:
    resampling = getattr(Image, "Resampling", Image)
    return getattr(resampling, "LANCZOS", getattr(resampling, "BICUBIC", 3))


def _bounded_size(width: int, height: int, max_side: int) -> tuple[int, int]:
    """Scale (width, height) so the longest edge is at most `max_side`; never upscale."""
    if max_side <= 0 or max(width, height) <= max_side:
        return width, height
    if width >= height:
        return max_side, max(1, round(height * max_side / width))
    return max(1, round(width * max_side / height)), max_side


def _setting_int(settings: object | None, key: str, default: int) -> int:
    if settings is None:
        return default
    try:
        return int(settings.get(key, default) or default)
    except (ValueError, TypeError):
        return default


class ImageNormalizer:
    """Turn arbitrary supported inputs into `NormalizedImage` values."""

    def __init__(self, settings: object | None = None) -> None:
        self._max_dimension = _setting_int(settings, "upload.max_dimension", DEFAULT_MAX_DIMENSION)
        self._jpeg_quality = _setting_int(settings, "upload.jpeg_quality", DEFAULT_JPEG_QUALITY)
        self._heic_quality = _setting_int(settings, "upload.heic_quality", DEFAULT_HEIC_QUALITY)
        self._max_bytes = _setting_int(settings, "upload.max_upload_bytes", MAX_UPLOAD_SIZE_BYTES)
        self._pillow_heif_available = bool(PIL_HEIF_AVAILABLE)

    @property
    def max_dimension(self) -> int:
        return self._max_dimension

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    # Public API
    def normalize(self, source: SourceFile) -> NormalizedImage:
        """Return the canonical upload image for `source`.

        Raises:
            UnsupportedTypeError: declared type is not jpeg, png, heic or heif.
            ImageDecodeError: bytes cannot be decoded.
            FileTooLargeError: compressed bytes exceed the upload ceiling.
        """
        media_type = source.normalized_type
        if media_type not in SUPPORTED_IMAGE_TYPES:
            raise UnsupportedTypeError(source.media_type)

        data = source.data
        if media_type in (HEIC_MIME, HEIF_MIME):
            data = self._convert_heic_to_jpeg(data, source.name)
            media_type = JPEG_MIME

        encoded, mime_type = self._compress(data, media_type, source.name)
        width, height = self._probe_dimensions(encoded, source.name)

        size_bytes = len(encoded)
        if size_bytes > self._max_bytes:
            raise FileTooLargeError(size_bytes, self._max_bytes)

        logger.debug(
            "Normalized {} ({} bytes, {}) -> {}x{} {} ({} bytes)",
            source.name,
            source.size_bytes,
            source.media_type,
            width,
            height,
            mime_type,
            size_bytes,
        )
        return NormalizedImage(
            data=encoded, width=width, height=height, size_bytes=size_bytes, mime_type=mime_type
        )

    # Internal helpers
    def _convert_heic_to_jpeg(self, data: bytes, name: str) -> bytes:
        """Decode HEIC/HEIF bytes and re-encode them as JPEG."""
        if not self._pillow_heif_available:
            raise ImageDecodeError(f"HEIC support is not installed, cannot read {name}")
        try:
            with Image.open(BytesIO(data)) as im:
                im.load()
                rgb = im.convert("RGB") if im.mode != "RGB" else im
                out = BytesIO()
                save_kwargs: dict[str, Any] = {"quality": self._heic_quality}
                exif = im.info.get("exif")
                if exif:
                    save_kwargs["exif"] = exif
                rgb.save(out, "JPEG", **save_kwargs)
                return out.getvalue()
        except _DECODE_ERRORS as ex:
            logger.debug("HEIC conversion failed for {}: {}", name, ex)
            raise ImageDecodeError(f"Could not read HEIC image {name}: {ex}") from ex

    def _compress(self, data: bytes, media_type: str, name: str) -> tuple[bytes, str]:
        """Bound the longest edge and recompress; returns (bytes, mime type)."""
        target_mime = PNG_MIME if media_type == PNG_MIME else JPEG_MIME
        try:
            with Image.open(BytesIO(data)) as src:
                src.load()
                try:
                    im = ImageOps.exif_transpose(src)
                except (OSError, ValueError, AttributeError):
                    im = src
                new_size = _bounded_size(im.width, im.height, self._max_dimension)
                if new_size != (im.width, im.height):
                    im = im.resize(new_size, _resample())
                out = BytesIO()
                if target_mime == JPEG_MIME:
                    if im.mode != "RGB":
                        im = im.convert("RGB")
                    im.save(out, "JPEG", quality=self._jpeg_quality)
                else:
                    if im.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                        im = im.convert("RGBA")
                    im.save(out, "PNG", optimize=True)
                return out.getvalue(), target_mime
        except _DECODE_ERRORS as ex:
            logger.debug("Compression failed for {}: {}", name, ex)
            raise ImageDecodeError(f"Could not read image {name}: {ex}") from ex

    def _probe_dimensions(self, data: bytes, name: str) -> tuple[int, int]:
        try:
            with Image.open(BytesIO(data)) as im:
                width, height = im.size
        except _DECODE_ERRORS as ex:
            raise ImageDecodeError(f"Could not probe image {name}: {ex}") from ex
        if width <= 0 or height <= 0:
            raise ImageDecodeError(f"Image {name} has no pixels")
        return int(width), int(height)
