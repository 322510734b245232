from __future__ import annotations

import json
import os
from typing import Any

from .layer_cache import DEFAULT_MAX_BYTES
from .logger import get_logger

_logger = get_logger("settings")


class SettingsManager:
    def __init__(self, settings_path: str):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    DEFAULTS: dict[str, Any] = {
        "cache_results": True,
        "cache_max_bytes": DEFAULT_MAX_BYTES,
        "last_image_id": None,
    }

    def load(self) -> None:
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                    if isinstance(data, dict):
                        self._settings = data
                        _logger.debug("settings loaded: %s", self.settings_path)
                        return
        except Exception as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except Exception as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def cache_results(self) -> bool:
        return bool(self.get("cache_results"))

    @property
    def cache_max_bytes(self) -> int:
        try:
            return max(0, int(self.get("cache_max_bytes")))
        except (TypeError, ValueError):
            _logger.warning("invalid cache_max_bytes: %r", self.get("cache_max_bytes"))
            return DEFAULT_MAX_BYTES

    @property
    def last_image_id(self) -> str | None:
        val = self.get("last_image_id")
        return val if isinstance(val, str) and val else None
