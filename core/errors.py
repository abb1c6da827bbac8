"""Error taxonomy for spot submissions.

Validation errors never reach the network. Normalization errors are scoped to
a single photo entry. Transport errors come from storage or RPC calls and
trigger the compensation paths in the upload service and the orchestrator.
"""

from __future__ import annotations


class SpotSubmissionError(Exception):
    """Base class for all errors raised by the submission workflow."""


class ValidationError(SpotSubmissionError):
    """Local form validation failed; carries per-field messages."""

    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.field_errors.items()))


class NormalizationError(SpotSubmissionError):
    """A photo could not be turned into a canonical upload image."""


class UnsupportedTypeError(NormalizationError):
    """Declared media type is not jpeg, png, heic or heif."""

    def __init__(self, media_type: str) -> None:
        self.media_type = media_type
        super().__init__(f"Unsupported image type: {media_type or 'unknown'}")


class FileTooLargeError(NormalizationError):
    """Image is still above the upload ceiling after compression."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"Image is {size_bytes} bytes after compression, limit is {limit_bytes} bytes"
        )


class ImageDecodeError(NormalizationError):
    """Bytes could not be decoded as an image."""


class TransportError(SpotSubmissionError):
    """A storage or RPC call failed or returned an inconsistent result."""


class StorageUploadError(TransportError):
    """Blob upload failed; nothing was stored."""


class UrlResolutionError(TransportError):
    """No public URL could be resolved for an uploaded blob."""


class MetadataRegistrationError(TransportError):
    """The add-photo procedure rejected the metadata row."""


class MergeRejectedError(TransportError):
    """The merge-spot procedure rejected the spot (validation, permission)."""


class PhotoDeleteError(TransportError):
    """The delete-photo procedure failed."""


class BatchLockedError(SpotSubmissionError):
    """Batch membership or cover cannot change while a submission runs."""


class BatchFullError(SpotSubmissionError):
    """No free photo slots are left in the batch.

    `rejected` holds files of the same selection that were refused for their
    type, so the caller can still report them.
    """

    def __init__(self, message: str, rejected: list | None = None) -> None:
        self.rejected = list(rejected or [])
        super().__init__(message)
