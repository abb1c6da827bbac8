"""Create-or-update of a spot's core record through the merge procedure."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loguru import logger

from core.errors import MergeRejectedError
from core.models import SpotFields
from core.services.interfaces import ISpotBackend
from core.services.rating import DEFAULT_SCALE, overall_score


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_merge_payload(
    list_id: str, spot_id: str | None, fields: SpotFields, scale: int = DEFAULT_SCALE
) -> dict[str, Any]:
    """Map form fields onto the merge procedure's input."""
    score = overall_score(fields.ratings, scale)
    return {
        "list_id": list_id,
        "spot_id": spot_id,
        "name": (fields.name or "").strip(),
        "score": score or None,
        "criteria": dict(fields.ratings or {}),
        "comment": _blank_to_none(fields.comment),
        "description": _blank_to_none(fields.description),
        "category": fields.category,
        "address": _blank_to_none(fields.address),
        "cover_photo_url": fields.cover_photo_url or None,
        "phone": _blank_to_none(fields.phone),
        "website": _blank_to_none(fields.website),
    }


@dataclass(frozen=True)
class MergeResult:
    spot_id: str
    # True only when this call created the spot; merges matching an existing spot report False
    created: bool


class SpotMergeTransaction:
    """One atomic merge call per submission; no client-side retries."""

    def __init__(self, backend: ISpotBackend, scale: int = DEFAULT_SCALE) -> None:
        self._backend = backend
        self._scale = scale

    async def merge(self, list_id: str, spot_id: str | None, fields: SpotFields) -> str:
        """Merge `fields` into the spot and return its identifier.

        Raises:
            MergeRejectedError: the procedure failed or returned no identifier.
        """
        result = await self.merge_with_status(list_id, spot_id, fields)
        return result.spot_id

    async def merge_with_status(
        self, list_id: str, spot_id: str | None, fields: SpotFields
    ) -> MergeResult:
        """Like `merge`, also reporting whether the spot was created by this call."""
        payload = build_merge_payload(list_id, spot_id, fields, self._scale)
        try:
            data = await self._backend.merge_spot(payload)
        except Exception as ex:  # pylint: disable=broad-exception-caught
            logger.error("Merge rejected for list {} (spot {}): {}", list_id, spot_id, ex)
            raise MergeRejectedError(str(ex) or "Spot could not be saved") from ex

        data = data or {}
        merged_id = spot_id or data.get("id")
        if not merged_id:
            raise MergeRejectedError("Could not determine the spot id after saving")
        created = spot_id is None and bool(data.get("created", True))
        logger.info(
            "Merged spot {} in list {} ({})", merged_id, list_id, "create" if created else "update"
        )
        return MergeResult(spot_id=str(merged_id), created=created)
