"""Data records exchanged with the backend.

All records are frozen: the session replaces them wholesale instead of editing
them in place. Each record has a tolerant `from_payload()` that accepts the
backend's JSON-ish dicts (snake_case or camelCase keys).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

_LAYER_ID_PREFIX = "layer_"
_SIZE_RE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([KMGT]?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3, "TB": 1024**4}


def _pick(payload: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return default


def parse_size(size: str | int | float | None) -> int:
    """Best-effort byte count for sizes reported as `123`, `"512B"` or `"1.5MB"`."""

    if size is None:
        return 0
    if isinstance(size, (int, float)):
        return max(0, int(size))
    m = _SIZE_RE.match(str(size))
    if not m:
        return 0
    unit = (m.group(2) or "B").upper()
    return int(float(m.group(1)) * _SIZE_UNITS[unit])


def layer_number(layer_id: str) -> int | None:
    """Return N for ids of the form `layer_N`, otherwise None."""

    if not layer_id or not layer_id.startswith(_LAYER_ID_PREFIX):
        return None
    try:
        return int(layer_id[len(_LAYER_ID_PREFIX) :], 10)
    except ValueError:
        return None


@dataclass(frozen=True, slots=True)
class FileEntry:
    """One file or directory discovered by an extraction."""

    name: str
    path: str
    is_dir: bool = False
    size: str | None = None
    depth: int | None = None
    needs_loading: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> FileEntry:
        path = str(_pick(payload, "path", default=""))
        name = str(_pick(payload, "name", default="") or path.rstrip("/").rsplit("/", 1)[-1])
        if "is_dir" in payload or "isDir" in payload:
            is_dir = bool(_pick(payload, "is_dir", "isDir", default=False))
        else:
            is_dir = str(_pick(payload, "type", "file_type", default="file")) == "directory"
        size = _pick(payload, "size")
        depth = _pick(payload, "depth")
        return cls(
            name=name,
            path=path,
            is_dir=is_dir,
            size=None if size is None else str(size),
            depth=None if depth is None else int(depth),
            needs_loading=bool(_pick(payload, "needs_loading", "needsLoading", default=False)),
        )

    @property
    def size_bytes(self) -> int:
        return parse_size(self.size)


@dataclass(frozen=True, slots=True)
class LayerInfo:
    id: str
    name: str = ""
    command: str = ""
    size: str = ""
    created_at: str = ""
    files: tuple[FileEntry, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> LayerInfo:
        files = _pick(payload, "files", default=[]) or []
        return cls(
            id=str(_pick(payload, "id", default="")),
            name=str(_pick(payload, "name", default="")),
            command=str(_pick(payload, "command", default="")),
            size=str(_pick(payload, "size", default="")),
            created_at=str(_pick(payload, "createdAt", "created_at", default="")),
            files=tuple(FileEntry.from_payload(f) for f in files),
        )

    @property
    def number(self) -> int | None:
        return layer_number(self.id)


@dataclass(frozen=True, slots=True)
class ImageInfo:
    id: str
    name: str = ""
    created: str = ""
    size: str = ""
    layers: tuple[LayerInfo, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ImageInfo:
        layers = _pick(payload, "layers", default=[]) or []
        return cls(
            id=str(_pick(payload, "id", default="")),
            name=str(_pick(payload, "name", default="")),
            created=str(_pick(payload, "created", default="")),
            size=str(_pick(payload, "size", default="")),
            layers=tuple(LayerInfo.from_payload(layer) for layer in layers),
        )

    def layer(self, layer_id: str) -> LayerInfo | None:
        for layer in self.layers:
            if layer.id == layer_id:
                return layer
        return None


@dataclass(frozen=True, slots=True)
class ImageSummary:
    """Entry of the available-images list."""

    id: str
    repository: str = ""
    tag: str = ""
    created: str = ""
    size: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ImageSummary:
        return cls(
            id=str(_pick(payload, "id", default="")),
            repository=str(_pick(payload, "repository", default="")),
            tag=str(_pick(payload, "tag", default="")),
            created=str(_pick(payload, "created", default="")),
            size=str(_pick(payload, "size", default="")),
        )

    @property
    def display_name(self) -> str:
        if self.repository and self.tag:
            return f"{self.repository}:{self.tag}"
        return self.repository or self.id


@dataclass(frozen=True, slots=True)
class TaskStatus:
    message: str
    progress: float = 0.0
    is_complete: bool = False
    error: str | None = None

    def __post_init__(self) -> None:
        # Clamp so a misbehaving backend cannot push the bar out of range.
        object.__setattr__(self, "progress", max(0.0, min(1.0, float(self.progress))))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TaskStatus:
        error = _pick(payload, "error")
        return cls(
            message=str(_pick(payload, "message", default="")),
            progress=float(_pick(payload, "progress", default=0.0)),
            is_complete=bool(_pick(payload, "is_complete", "isComplete", default=False)),
            error=None if error is None else str(error),
        )

    @property
    def failed(self) -> bool:
        return self.is_complete and bool(self.error)


@dataclass(frozen=True, slots=True)
class LayerDiff:
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> LayerDiff:
        def _paths(key: str) -> tuple[str, ...]:
            return tuple(str(p) for p in (payload.get(key) or []))

        return cls(
            added=_paths("added"),
            removed=_paths("removed"),
            modified=_paths("modified"),
            unchanged=_paths("unchanged"),
        )


@dataclass(frozen=True, slots=True)
class LayerImpact:
    line_number: int
    instruction: str
    impact: str


@dataclass(frozen=True, slots=True)
class OptimizationSuggestion:
    title: str
    description: str


@dataclass(frozen=True, slots=True)
class DockerfileAnalysis:
    layer_impact: tuple[LayerImpact, ...] = field(default_factory=tuple)
    optimization_suggestions: tuple[OptimizationSuggestion, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> DockerfileAnalysis:
        impacts = _pick(payload, "layer_impact", "layerImpact", default=[]) or []
        suggestions = _pick(payload, "optimization_suggestions", "optimizationSuggestions", default=[]) or []
        return cls(
            layer_impact=tuple(
                LayerImpact(
                    line_number=int(_pick(i, "line_number", "lineNumber", default=0)),
                    instruction=str(_pick(i, "instruction", default="")),
                    impact=str(_pick(i, "impact", default="")),
                )
                for i in impacts
            ),
            optimization_suggestions=tuple(
                OptimizationSuggestion(
                    title=str(_pick(s, "title", default="")),
                    description=str(_pick(s, "description", default="")),
                )
                for s in suggestions
            ),
        )
