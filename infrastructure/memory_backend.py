"""In-memory storage and spot backend.

Both classes honor the collaborator contracts: every call is atomic, blobs
are never overwritten, photo rows require an existing spot, and deleting a
spot cascades to its photo rows and ratings (not to blobs). Calls are
recorded and failures can be injected per method and per call number, which
makes them suitable for exercising the compensation paths.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any
import uuid

from loguru import logger

from core.services.interfaces import TransferCallback


@dataclass
class _Fault:
    error: Exception
    on_call: int | None  # 1-based; None means every call


class _FaultInjector:
    """Records calls and raises configured errors."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self._faults: dict[str, list[_Fault]] = {}
        self._counts: dict[str, int] = {}

    def fail(self, method: str, error: Exception, on_call: int | None = None) -> None:
        """Make `method` raise `error` on its `on_call`-th invocation (or always)."""
        self._faults.setdefault(method, []).append(_Fault(error=error, on_call=on_call))

    def calls_to(self, method: str) -> list[Any]:
        return [arg for name, arg in self.calls if name == method]

    def _record(self, method: str, arg: Any) -> None:
        self.calls.append((method, arg))
        count = self._counts.get(method, 0) + 1
        self._counts[method] = count
        for fault in self._faults.get(method, []):
            if fault.on_call is None or fault.on_call == count:
                logger.debug("Injected failure in {} (call {}): {}", method, count, fault.error)
                raise fault.error


class InMemoryBlobStorage(_FaultInjector):
    """Blob store keyed by (bucket, path)."""

    def __init__(self, base_url: str = "https://storage.local/public", chunk_size: int = 64 * 1024) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._chunk_size = max(1, int(chunk_size))
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.unresolvable: set[str] = set()

    def exists(self, bucket: str, path: str) -> bool:
        return (bucket, path) in self.objects

    def paths(self, bucket: str | None = None) -> list[str]:
        return sorted(p for b, p in self.objects if bucket is None or b == bucket)

    async def put(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: TransferCallback | None = None,
    ) -> None:
        self._record("put", path)
        if (bucket, path) in self.objects:
            raise FileExistsError(f"Object already exists: {bucket}/{path}")
        total = len(data)
        loaded = 0
        while loaded < total:
            loaded = min(total, loaded + self._chunk_size)
            if on_progress is not None:
                on_progress(loaded, total)
            await asyncio.sleep(0)
        self.objects[(bucket, path)] = (bytes(data), content_type)

    async def get_public_url(self, bucket: str, path: str) -> str | None:
        self._record("get_public_url", path)
        if (bucket, path) not in self.objects or path in self.unresolvable:
            return None
        return f"{self._base_url}/{bucket}/{path}"

    async def remove(self, bucket: str, paths: list[str]) -> None:
        self._record("remove", list(paths))
        for path in paths:
            self.objects.pop((bucket, path), None)


class InMemorySpotBackend(_FaultInjector):
    """Spots, ratings, and photo rows with atomic single-call procedures."""

    def __init__(self) -> None:
        super().__init__()
        self.spots: dict[str, dict[str, Any]] = {}
        self.ratings: dict[str, dict[str, Any]] = {}
        self.photos: dict[str, dict[str, Any]] = {}

    def photos_of(self, spot_id: str) -> list[dict[str, Any]]:
        return [p for p in self.photos.values() if p["spot_id"] == spot_id]

    def _find_by_name(self, list_id: str, name: str) -> str | None:
        key = (name or "").strip().lower()
        for spot_id, spot in self.spots.items():
            if spot["list_id"] == list_id and spot["name"].strip().lower() == key:
                return spot_id
        return None

    async def merge_spot(self, payload: dict[str, Any]) -> dict[str, Any]:
        self._record("merge_spot", dict(payload))
        list_id = payload["list_id"]
        spot_id = payload.get("spot_id")
        created = False
        if spot_id:
            if spot_id not in self.spots:
                raise LookupError(f"Spot {spot_id} does not exist")
        else:
            spot_id = self._find_by_name(list_id, payload.get("name") or "")
            if spot_id is None:
                spot_id = str(uuid.uuid4())
                created = True
                self.spots[spot_id] = {"id": spot_id, "list_id": list_id, "cover_photo_url": None}
        spot = self.spots[spot_id]
        for key in ("name", "category", "address", "description", "phone", "website"):
            if payload.get(key) is not None or key == "name":
                spot[key] = payload.get(key)
        if payload.get("cover_photo_url"):
            spot["cover_photo_url"] = payload["cover_photo_url"]
        self.ratings[spot_id] = {
            "score": payload.get("score"),
            "criteria": dict(payload.get("criteria") or {}),
            "comment": payload.get("comment"),
        }
        spot["score"] = payload.get("score")
        return {"id": spot_id, "created": created}

    async def add_spot_photo(self, payload: dict[str, Any]) -> dict[str, Any]:
        self._record("add_spot_photo", dict(payload))
        spot = self.spots.get(payload["spot_id"])
        if spot is None or spot["list_id"] != payload["list_id"]:
            raise LookupError(f"Spot {payload['spot_id']} not found in list {payload['list_id']}")
        photo_id = str(uuid.uuid4())
        is_cover = bool(payload.get("set_as_cover"))
        if is_cover:
            for other in self.photos_of(spot["id"]):
                other["is_cover"] = False
            spot["cover_photo_url"] = payload["public_url"]
        row = {
            "id": photo_id,
            "list_id": payload["list_id"],
            "spot_id": payload["spot_id"],
            "storage_path": payload["storage_path"],
            "public_url": payload["public_url"],
            "width": payload["width"],
            "height": payload["height"],
            "size_bytes": payload["size_bytes"],
            "mime_type": payload["mime_type"],
            "is_cover": is_cover,
        }
        self.photos[photo_id] = row
        return dict(row)

    async def delete_spot_photo(self, photo_id: str) -> dict[str, Any]:
        self._record("delete_spot_photo", photo_id)
        row = self.photos.pop(photo_id, None)
        if row is None:
            raise LookupError(f"Photo {photo_id} not found")
        spot = self.spots.get(row["spot_id"])
        if spot is not None and row["is_cover"] and spot.get("cover_photo_url") == row["public_url"]:
            spot["cover_photo_url"] = None
        return {"storage_path": row["storage_path"]}

    async def set_spot_cover_photo(self, photo_id: str) -> dict[str, Any]:
        self._record("set_spot_cover_photo", photo_id)
        row = self.photos.get(photo_id)
        if row is None:
            raise LookupError(f"Photo {photo_id} not found")
        for other in self.photos_of(row["spot_id"]):
            other["is_cover"] = other["id"] == photo_id
        self.spots[row["spot_id"]]["cover_photo_url"] = row["public_url"]
        return dict(row)

    async def delete_spot(self, spot_id: str) -> None:
        self._record("delete_spot", spot_id)
        if self.spots.pop(spot_id, None) is None:
            raise LookupError(f"Spot {spot_id} not found")
        self.ratings.pop(spot_id, None)
        for photo_id in [p["id"] for p in self.photos_of(spot_id)]:
            del self.photos[photo_id]

    async def delete_spot_rating(self, spot_id: str) -> None:
        self._record("delete_spot_rating", spot_id)
        if self.ratings.pop(spot_id, None) is None:
            raise LookupError(f"No rating for spot {spot_id}")
