"""Backend path normalization.

The backend reports entry paths inside its own scratch namespace, e.g.
``/tmp/layers/current_layer/fs/etc/hosts``. This module centralizes the rules
for turning those paths into logical in-image paths (``etc/hosts``):

- Paths under ``/<root...>/<layer dir>/<fs dir>/`` are stripped of that prefix.
- Paths that resolve to nothing (the namespace directories themselves, or the
  layer's bookkeeping files that live next to ``fs/``) are excluded.
- Paths outside the namespace are taken as already logical; reserved
  bookkeeping names at their root are excluded too.

Keep this module free of Qt dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass

RESERVED_NAMES = frozenset({"layer_info.txt", "command.txt", "fs.tar"})


def split_path(path: str) -> list[str]:
    """Split on forward slashes, dropping empty segments."""
    return [p for p in str(path).split("/") if p]


@dataclass(frozen=True, slots=True)
class LayerPathNamespace:
    """Where the backend keeps extracted layer filesystems.

    `root` is the fixed leading segments, followed by one layer directory
    segment and one filesystem directory segment (`depth` = len(root) + 2).
    """

    root: tuple[str, ...] = ("tmp", "layers")
    reserved_names: frozenset[str] = RESERVED_NAMES

    @property
    def depth(self) -> int:
        return len(self.root) + 2

    def is_namespaced(self, parts: list[str]) -> bool:
        n = len(self.root)
        return len(parts) >= n and tuple(parts[:n]) == self.root

    def logical_parts(self, path: str) -> list[str] | None:
        """Logical path segments for `path`, or None if it must be excluded."""

        parts = split_path(path)
        if self.is_namespaced(parts):
            parts = parts[self.depth :]
        if not parts:
            return None
        if len(parts) == 1 and parts[0] in self.reserved_names:
            return None
        return parts

    def prefix_parts(self, path: str) -> list[str]:
        """Namespace segments that precede the logical path (empty if none)."""

        parts = split_path(path)
        if self.is_namespaced(parts):
            return parts[: self.depth]
        return []

    def backend_path(self, prefix: list[str], logical: list[str]) -> str:
        return "/" + "/".join([*prefix, *logical])

    def display_path(self, path: str) -> str:
        """Absolute in-image path for showing or copying (``/etc/hosts``)."""

        parts = self.logical_parts(path)
        if parts is None:
            return "/"
        return "/" + "/".join(parts)


DEFAULT_NAMESPACE = LayerPathNamespace()


def is_strict_descendant(path: str, ancestor: str) -> bool:
    """True if `path` lies strictly under `ancestor` (segment-wise, not by string prefix)."""

    base = split_path(ancestor)
    parts = split_path(path)
    return len(parts) > len(base) and parts[: len(base)] == base


def same_path(a: str, b: str) -> bool:
    return split_path(a) == split_path(b)
