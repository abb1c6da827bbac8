"""Draft persistence for unfinished spot forms.

Drafts are plain dicts keyed by form scope (list and spot). `JsonDraftStore`
keeps them in one JSON file so an abandoned form can be resumed after a
restart; `InMemoryDraftStore` keeps them for the lifetime of the process.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

from loguru import logger


class InMemoryDraftStore:
    """Process-local draft storage."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def load(self, key: str) -> dict[str, Any] | None:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def save(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    def clear(self, key: str) -> None:
        self._data.pop(key, None)


class JsonDraftStore:
    """Drafts persisted to a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(os.path.expanduser(os.path.expandvars(str(path))))

    @classmethod
    def from_settings(cls, settings: object) -> JsonDraftStore | None:
        raw = settings.get("draft.path", None)
        if not isinstance(raw, str) or not raw:
            return None
        return cls(raw)

    @property
    def path(self) -> Path:
        return self._path

    def load(self, key: str) -> dict[str, Any] | None:
        value = self._read().get(key)
        return value if isinstance(value, dict) else None

    def save(self, key: str, value: dict[str, Any]) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def clear(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as ex:
            logger.warning("Draft file {} unreadable, starting empty: {}", self._path, ex)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self._path)
