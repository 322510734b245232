"""Flat entry list -> lazy filesystem tree.

Everything here is a pure function over frozen records, so the session can
rebuild the projection freely; node identity comes only from the logical path.
"""

from __future__ import annotations

import dataclasses
import functools
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from layer_inspector.models import FileEntry
from layer_inspector.path_utils import (
    DEFAULT_NAMESPACE,
    LayerPathNamespace,
    is_strict_descendant,
    same_path,
    split_path,
)

FILE = "file"
DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class TreeNode:
    id: str
    name: str
    path: str
    kind: str
    entry: FileEntry
    children: tuple[TreeNode, ...] = ()
    expanded: bool = False

    @property
    def is_dir(self) -> bool:
        return self.kind == DIRECTORY

    @property
    def size(self) -> str | None:
        return None if self.is_dir else self.entry.size

    @property
    def needs_loading(self) -> bool:
        return self.is_dir and self.entry.needs_loading


class _Draft:
    """Mutable node used while assembling; frozen into TreeNode at the end."""

    __slots__ = ("children", "entry", "id", "is_dir", "name", "path")

    def __init__(self, node_id: str, name: str, path: str, entry: FileEntry, is_dir: bool) -> None:
        self.id = node_id
        self.name = name
        self.path = path
        self.entry = entry
        self.is_dir = is_dir
        self.children: list[_Draft] = []


def _sort_key(draft: _Draft) -> tuple[int, str, str]:
    return (0 if draft.is_dir else 1, draft.name.casefold(), draft.name)


def _freeze(drafts: list[_Draft], expanded: frozenset[str]) -> tuple[TreeNode, ...]:
    out: list[TreeNode] = []
    for d in sorted(drafts, key=_sort_key):
        out.append(
            TreeNode(
                id=d.id,
                name=d.name,
                path=d.path,
                kind=DIRECTORY if d.is_dir else FILE,
                entry=d.entry,
                children=_freeze(d.children, expanded),
                expanded=d.id in expanded,
            )
        )
    return tuple(out)


@functools.lru_cache(maxsize=16)
def _build_cached(
    entries: tuple[FileEntry, ...],
    namespace: LayerPathNamespace,
    expanded: frozenset[str],
) -> tuple[TreeNode, ...]:
    roots: list[_Draft] = []
    by_id: dict[str, _Draft] = {}

    for entry in entries:
        logical = namespace.logical_parts(entry.path)
        if logical is None:
            continue
        prefix = namespace.prefix_parts(entry.path)

        parent: _Draft | None = None
        for i, part in enumerate(logical):
            node_id = "/".join(logical[: i + 1])
            is_leaf = i == len(logical) - 1
            node = by_id.get(node_id)

            if node is None:
                if is_leaf:
                    node = _Draft(node_id, part, entry.path, entry, entry.is_dir)
                else:
                    path = namespace.backend_path(prefix, logical[: i + 1])
                    synthetic = FileEntry(name=part, path=path, is_dir=True, depth=i)
                    node = _Draft(node_id, part, path, synthetic, True)
                by_id[node_id] = node
                if parent is None:
                    roots.append(node)
                else:
                    parent.children.append(node)
            elif is_leaf and entry.is_dir:
                # An explicit directory record wins over a synthesized one.
                node.entry = entry
                node.path = entry.path
                node.is_dir = True
            elif not is_leaf:
                node.is_dir = True

            parent = node

    return _freeze(roots, expanded)


def build_tree(
    entries: Iterable[FileEntry],
    namespace: LayerPathNamespace = DEFAULT_NAMESPACE,
    expanded: Iterable[str] = (),
) -> tuple[TreeNode, ...]:
    """Build the ordered forest for a flat entry collection.

    Directories come before files at every level, then names in
    case-insensitive order. `expanded` holds node ids to mark expanded.
    """

    return _build_cached(tuple(entries), namespace, frozenset(expanded))


def filter_tree(forest: Sequence[TreeNode], query: str) -> tuple[TreeNode, ...]:
    """Keep nodes whose name or logical path contains `query` (case-insensitive).

    A non-matching directory survives if any descendant matches; it is then
    returned with only the surviving children and forced expanded. A matching
    node is kept whole with every directory in it that has children expanded. A blank query returns
    the forest unchanged.
    """

    q = (query or "").strip().casefold()
    if not q:
        return tuple(forest)
    return _filter(forest, q)


def _filter(nodes: Sequence[TreeNode], q: str) -> tuple[TreeNode, ...]:
    out: list[TreeNode] = []
    for node in nodes:
        if q in node.name.casefold() or q in node.id.casefold():
            out.append(_expand_all(node))
        elif node.children:
            kept = _filter(node.children, q)
            if kept:
                out.append(dataclasses.replace(node, children=kept, expanded=True))
    return tuple(out)


def _expand_all(node: TreeNode) -> TreeNode:
    if not node.children:
        return node
    return dataclasses.replace(node, children=tuple(_expand_all(c) for c in node.children), expanded=True)


def merge_extracted(
    entries: Sequence[FileEntry],
    dir_path: str,
    new_entries: Sequence[FileEntry],
) -> list[FileEntry]:
    """Merge a freshly extracted directory into a flat entry collection.

    Entries strictly under `dir_path` are dropped first, then `new_entries`
    are added. The directory's own record is kept but marked resolved. The
    result never holds two entries with the same path; later records win.
    """

    merged: dict[str, FileEntry] = {}
    for entry in entries:
        if is_strict_descendant(entry.path, dir_path):
            continue
        if same_path(entry.path, dir_path) and entry.needs_loading:
            entry = dataclasses.replace(entry, needs_loading=False)
        merged[_key(entry.path)] = entry

    for entry in new_entries:
        merged.pop(_key(entry.path), None)
        merged[_key(entry.path)] = entry

    return list(merged.values())


def dedupe_entries(entries: Iterable[FileEntry]) -> list[FileEntry]:
    """Drop repeated paths, keeping the last record for each."""

    merged: dict[str, FileEntry] = {}
    for entry in entries:
        merged.pop(_key(entry.path), None)
        merged[_key(entry.path)] = entry
    return list(merged.values())


def _key(path: str) -> str:
    return "/" + "/".join(split_path(path))


def find_entry(entries: Iterable[FileEntry], path: str) -> FileEntry | None:
    for entry in entries:
        if same_path(entry.path, path):
            return entry
    return None


def walk(forest: Sequence[TreeNode]) -> Iterator[TreeNode]:
    """Depth-first, pre-order iteration in display order."""

    for node in forest:
        yield node
        yield from walk(node.children)


def find_node(forest: Sequence[TreeNode], node_id: str) -> TreeNode | None:
    for node in walk(forest):
        if node.id == node_id:
            return node
    return None


def visible_rows(forest: Sequence[TreeNode], level: int = 0) -> Iterator[tuple[int, TreeNode]]:
    """(level, node) pairs a tree widget would show given the expanded flags."""

    for node in forest:
        yield level, node
        if node.is_dir and node.expanded:
            yield from visible_rows(node.children, level + 1)
