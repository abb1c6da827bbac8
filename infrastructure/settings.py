"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any

DEFAULT_SETTINGS: dict[str, Any] = {
    "upload": {
        "max_dimension": 1920,
        "jpeg_quality": 82,
        "heic_quality": 90,
        "max_upload_bytes": 10 * 1024 * 1024,
        "max_photos": 8,
    },
    "storage": {"bucket": "list-covers"},
    "preview": {"cache_dir": None},
    "draft": {"path": None},
    "logging": {"dir": None, "level": "INFO"},
}


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access."""

    def __init__(self, settings_path: str | Path) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)

    @classmethod
    def defaults(cls) -> JsonSettings:
        """Settings holding the built-in defaults, without reading a file."""
        inst = cls.__new__(cls)
        inst._path = None
        inst._data = copy.deepcopy(DEFAULT_SETTINGS)
        return inst

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonSettings:
        inst = cls.__new__(cls)
        inst._path = None
        inst._data = copy.deepcopy(data)
        return inst

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        node: Any = self._data
        for part in parts:
            if isinstance(node, dict) and part in node:
                node = node[part]
            else:
                return default
        return node
