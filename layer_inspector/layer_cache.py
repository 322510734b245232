"""Bounded LRU of resolved layer entry collections.

Re-selecting a recently viewed layer shows its last known entries right away
while the export runs again. The cache is bounded by the summed entry sizes
(`cache_max_bytes`); least recently used layers are evicted first.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Sequence

from layer_inspector.logger import get_logger
from layer_inspector.models import FileEntry

_logger = get_logger("cache")

DEFAULT_MAX_BYTES = 512 * 1024 * 1024


class LayerCache:
    def __init__(self, *, max_bytes: int = DEFAULT_MAX_BYTES, enabled: bool = True) -> None:
        self._max_bytes = max(0, int(max_bytes))
        self._enabled = bool(enabled)
        self._entries: OrderedDict[str, tuple[tuple[FileEntry, ...], int]] = OrderedDict()
        self._total_bytes = 0
        self._evictions = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    @property
    def evictions(self) -> int:
        return self._evictions

    def layer_ids(self) -> list[str]:
        """Cached layer ids, least recently used first."""
        return list(self._entries)

    def configure(self, *, max_bytes: int | None = None, enabled: bool | None = None) -> None:
        if max_bytes is not None:
            self._max_bytes = max(0, int(max_bytes))
        if enabled is not None:
            self._enabled = bool(enabled)
        if not self._enabled:
            self.clear()
            return
        self._evict_over_budget(keep=None)

    def get(self, layer_id: str) -> tuple[FileEntry, ...] | None:
        if not self._enabled:
            return None
        item = self._entries.get(layer_id)
        if item is None:
            return None
        self._entries.move_to_end(layer_id)
        _logger.debug("layer cache HIT: %s (%d entries)", layer_id, len(item[0]))
        return item[0]

    def put(self, layer_id: str, entries: Sequence[FileEntry]) -> None:
        if not self._enabled or not layer_id:
            return
        frozen = tuple(entries)
        weight = sum(e.size_bytes for e in frozen if not e.is_dir)

        old = self._entries.pop(layer_id, None)
        if old is not None:
            self._total_bytes -= old[1]

        self._entries[layer_id] = (frozen, weight)
        self._total_bytes += weight
        self._evict_over_budget(keep=layer_id)

    def discard(self, layer_id: str) -> None:
        old = self._entries.pop(layer_id, None)
        if old is not None:
            self._total_bytes -= old[1]

    def clear(self) -> None:
        self._entries.clear()
        self._total_bytes = 0

    def _evict_over_budget(self, keep: str | None) -> None:
        while self._total_bytes > self._max_bytes:
            victim = next((lid for lid in self._entries if lid != keep), None)
            if victim is None:
                break
            _, weight = self._entries.pop(victim)
            self._total_bytes -= weight
            self._evictions += 1
            _logger.debug(
                "layer cache EVICT: %s bytes=%d total=%d evictions=%d",
                victim,
                weight,
                self._total_bytes,
                self._evictions,
            )
