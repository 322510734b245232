from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal

from layer_inspector.models import FileEntry
from layer_inspector.path_utils import DEFAULT_NAMESPACE, LayerPathNamespace
from layer_inspector.tree_builder import TreeNode, build_tree, filter_tree


class LayerFilesState(QObject):
    """Entries of the selected layer plus the tree projection bound by the UI.

    `entries` is the canonical flat collection. `tree` is derived from it (and
    from the expanded ids and search query) on every read; the build is memoized
    in tree_builder so repeated reads are cheap.
    """

    entriesChanged = Signal()
    treeChanged = Signal()
    isLoadingLayerFilesChanged = Signal(bool)
    loadingDirectoriesChanged = Signal()
    selectedFileChanged = Signal(object)
    selectedFileContentChanged = Signal(str)
    isLoadingFileContentChanged = Signal(bool)
    searchQueryChanged = Signal(str)

    def __init__(self, parent: QObject | None = None, namespace: LayerPathNamespace = DEFAULT_NAMESPACE) -> None:
        super().__init__(parent)
        self._namespace = namespace
        self._entries: tuple[FileEntry, ...] = ()
        self._is_loading_layer_files = False
        self._loading_directories: set[str] = set()
        self._selected_file: FileEntry | None = None
        self._selected_file_content = ""
        self._is_loading_file_content = False
        self._search_query = ""
        self._expanded: frozenset[str] = frozenset()

    @property
    def namespace(self) -> LayerPathNamespace:
        return self._namespace

    # ---- read-only properties (mutate via session) ----
    def _get_entries(self) -> list[FileEntry]:
        return list(self._entries)

    entries = Property(list, _get_entries, notify=entriesChanged)  # type: ignore[arg-type]

    def _get_full_tree(self) -> tuple[TreeNode, ...]:
        return build_tree(self._entries, self._namespace, self._expanded)

    def _get_tree(self) -> list[TreeNode]:
        return list(filter_tree(self._get_full_tree(), self._search_query))

    tree = Property(list, _get_tree, notify=treeChanged)  # type: ignore[arg-type]

    def _get_is_loading_layer_files(self) -> bool:
        return bool(self._is_loading_layer_files)

    isLoadingLayerFiles = Property(bool, _get_is_loading_layer_files, notify=isLoadingLayerFilesChanged)  # type: ignore[arg-type]

    def _get_loading_directories(self) -> list[str]:
        return sorted(self._loading_directories)

    loadingDirectories = Property(list, _get_loading_directories, notify=loadingDirectoriesChanged)  # type: ignore[arg-type]

    def _get_selected_file(self) -> FileEntry | None:
        return self._selected_file

    selectedFile = Property(object, _get_selected_file, notify=selectedFileChanged)  # type: ignore[arg-type]

    def _get_selected_file_content(self) -> str:
        return str(self._selected_file_content)

    selectedFileContent = Property(str, _get_selected_file_content, notify=selectedFileContentChanged)  # type: ignore[arg-type]

    def _get_is_loading_file_content(self) -> bool:
        return bool(self._is_loading_file_content)

    isLoadingFileContent = Property(bool, _get_is_loading_file_content, notify=isLoadingFileContentChanged)  # type: ignore[arg-type]

    def _get_search_query(self) -> str:
        return str(self._search_query)

    searchQuery = Property(str, _get_search_query, notify=searchQueryChanged)  # type: ignore[arg-type]

    def _get_expanded(self) -> frozenset[str]:
        return self._expanded

    def is_loading_directory(self, path: str) -> bool:
        return path in self._loading_directories

    # ---- internal mutation helpers (called by session) ----
    def _set_entries(self, entries: list[FileEntry] | tuple[FileEntry, ...]) -> None:
        e = tuple(entries)
        if e == self._entries:
            return
        self._entries = e
        self.entriesChanged.emit()
        self.treeChanged.emit()

    def _set_is_loading_layer_files(self, value: bool) -> None:
        v = bool(value)
        if v == self._is_loading_layer_files:
            return
        self._is_loading_layer_files = v
        self.isLoadingLayerFilesChanged.emit(v)

    def _add_loading_directory(self, path: str) -> None:
        if path in self._loading_directories:
            return
        self._loading_directories.add(path)
        self.loadingDirectoriesChanged.emit()

    def _remove_loading_directory(self, path: str) -> None:
        if path not in self._loading_directories:
            return
        self._loading_directories.discard(path)
        self.loadingDirectoriesChanged.emit()

    def _clear_loading_directories(self) -> None:
        if not self._loading_directories:
            return
        self._loading_directories.clear()
        self.loadingDirectoriesChanged.emit()

    def _set_selected_file(self, entry: FileEntry | None) -> None:
        if entry == self._selected_file:
            return
        self._selected_file = entry
        self.selectedFileChanged.emit(entry)

    def _set_selected_file_content(self, content: str) -> None:
        c = str(content)
        if c == self._selected_file_content:
            return
        self._selected_file_content = c
        self.selectedFileContentChanged.emit(c)

    def _set_is_loading_file_content(self, value: bool) -> None:
        v = bool(value)
        if v == self._is_loading_file_content:
            return
        self._is_loading_file_content = v
        self.isLoadingFileContentChanged.emit(v)

    def _set_search_query(self, query: str) -> None:
        q = str(query or "")
        if q == self._search_query:
            return
        self._search_query = q
        self.searchQueryChanged.emit(q)
        self.treeChanged.emit()

    def _set_expanded(self, expanded: frozenset[str] | set[str]) -> None:
        e = frozenset(expanded)
        if e == self._expanded:
            return
        self._expanded = e
        self.treeChanged.emit()
