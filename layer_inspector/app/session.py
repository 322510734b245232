"""Layer session orchestrator.

`LayerSession` owns the canonical state objects of one inspection session and
is the only thing that mutates them. Every operation is a coroutine that
suspends at each gateway call; responses that arrive after the user has moved
on (a newer image or layer selection, a newer file click) are dropped instead
of being committed.
"""

from __future__ import annotations

from layer_inspector.app.comparison import ComparisonController
from layer_inspector.app.state.comparison_state import ComparisonState
from layer_inspector.app.state.files_state import LayerFilesState
from layer_inspector.app.state.session_state import SessionPhase, SessionState
from layer_inspector.app.state.tasks_state import TasksState
from layer_inspector.errors import BackendError, ContentUnreadableError, ValidationError
from layer_inspector.gateway import CommandGateway
from layer_inspector.layer_cache import LayerCache
from layer_inspector.logger import get_logger
from layer_inspector.models import DockerfileAnalysis, FileEntry, ImageInfo, ImageSummary, layer_number
from layer_inspector.path_utils import DEFAULT_NAMESPACE, LayerPathNamespace
from layer_inspector.settings_manager import SettingsManager
from layer_inspector.tree_builder import dedupe_entries, find_entry, find_node, merge_extracted

_logger = get_logger("session")

FILE_ERROR_PREFIX = "Error reading file: "


class LayerSession:
    def __init__(
        self,
        gateway: CommandGateway,
        *,
        settings: SettingsManager | None = None,
        namespace: LayerPathNamespace = DEFAULT_NAMESPACE,
        cache: LayerCache | None = None,
    ) -> None:
        self._gateway = gateway
        self._settings_mgr = settings

        self.session = SessionState()
        self.files = LayerFilesState(namespace=namespace)
        self.tasks = TasksState()
        self.comparison_state = ComparisonState()
        self.comparison = ComparisonController(gateway, self.comparison_state, self.session, self.tasks)

        if cache is None:
            cache = LayerCache()
            if settings is not None:
                cache.configure(max_bytes=settings.cache_max_bytes, enabled=settings.cache_results)
        self._cache = cache

        # Generation counters: a response is committed only if the counter it
        # captured is still current when it arrives.
        self._image_generation = 0
        self._layer_generation = 0
        self._file_generation = 0

    @property
    def gateway(self) -> CommandGateway:
        return self._gateway

    @property
    def cache(self) -> LayerCache:
        return self._cache

    @property
    def phase(self) -> SessionPhase:
        return self.session._get_phase()

    # ---- image lifecycle ----
    async def refresh_images(self) -> list[ImageSummary]:
        self.session._set_is_loading_images(True)
        self.session._set_error(None)
        try:
            images = await self._gateway.list_available_images()
        except BackendError as e:
            _logger.warning("listing images failed: %s", e.message)
            self.session._set_error(e.message or "Failed to fetch images")
            return self.session._get_available_images()
        finally:
            self.session._set_is_loading_images(False)

        self.session._set_available_images(images)
        return images

    async def select_image(self, image_id: str) -> ImageInfo | None:
        """Tag and export an image, then auto-select its first layer.

        Returns the image, or None if the export failed or was superseded by a
        newer selection.
        """

        iid = str(image_id or "").strip()
        if not iid:
            raise ValidationError("Cannot process image: image id is empty")

        self._image_generation += 1
        generation = self._image_generation
        _logger.info("processing image %s", iid)

        self.comparison.reset()
        self._clear_layer_state()
        self._cache.clear()
        self.session._set_image(None)
        self.session._set_selected_image_id(iid)
        self.session._set_error(None)
        self.session._set_phase(SessionPhase.IMAGE_LOADING)
        self.tasks._begin("Starting image processing...", 0.0)

        self.tasks._checkpoint("Tagging image with 'layers' tag...", 0.1)
        try:
            tag_result = await self._gateway.retag_image(iid)
        except BackendError as e:
            if generation == self._image_generation:
                self._fail_image("Error tagging image", e)
            return None
        if generation != self._image_generation:
            _logger.debug("discarding stale retag response for %s", iid)
            return None
        _logger.debug("tag result: %s", tag_result)

        try:
            with self.tasks.follow(self._gateway):
                image = await self._gateway.export_image_layers()
        except BackendError as e:
            if generation == self._image_generation:
                self._fail_image("Error exporting image layers", e)
            return None
        if generation != self._image_generation:
            _logger.debug("discarding stale export for %s", iid)
            return None

        self.session._set_image(image)
        self.tasks._complete("Layer processing completed successfully")
        self.session._set_phase(SessionPhase.LAYERS_READY)
        self._remember_image(iid)
        _logger.info("image %s exported with %d layers", iid, len(image.layers))

        if image.layers:
            await self.select_layer(image.layers[0].id)
        return image

    def _fail_image(self, task_message: str, error: BackendError) -> None:
        _logger.warning("%s: %s", task_message, error.message)
        self.session._set_image(None)
        self.session._set_error(error.message)
        self.tasks._fail(task_message, error.message)
        self.session._set_phase(SessionPhase.IDLE)

    def _remember_image(self, image_id: str) -> None:
        if self._settings_mgr is None:
            return
        self._settings_mgr.set("last_image_id", image_id)

    # ---- layer lifecycle ----
    def _clear_layer_state(self) -> None:
        self._layer_generation += 1
        self._file_generation += 1
        self.session._set_selected_layer("", None)
        self.files._set_selected_file(None)
        self.files._set_selected_file_content("")
        self.files._set_is_loading_file_content(False)
        self.files._set_is_loading_layer_files(False)
        self.files._clear_loading_directories()
        self.files._set_expanded(frozenset())
        self.files._set_entries(())

    def _require_image(self) -> ImageInfo:
        image = self.session._get_image()
        if image is None:
            raise ValidationError("No image selected")
        return image

    async def select_layer(self, layer_id: str) -> None:
        """Show a layer's filesystem, or toggle it for comparison in comparison mode."""

        lid = str(layer_id or "").strip()
        if not lid:
            raise ValidationError("Cannot export layer: layer id is empty")
        image = self._require_image()
        if image.layer(lid) is None:
            raise ValidationError(f"Unknown layer: {lid}")

        if self.comparison.active:
            self.comparison.toggle_layer_selection(lid)
            return

        self._clear_layer_state()
        generation = self._layer_generation
        self.session._set_selected_layer(lid, layer_number(lid))

        cached = self._cache.get(lid)
        if cached is not None:
            self.files._set_entries(cached)

        self.files._set_is_loading_layer_files(True)
        self.session._set_error(None)
        self.session._set_phase(SessionPhase.LAYER_FILES_LOADING)
        self.tasks._begin("Exporting layer...", 0.0)

        try:
            with self.tasks.follow(self._gateway):
                exported = await self._gateway.export_single_layer(lid)
        except BackendError as e:
            if generation != self._layer_generation:
                _logger.debug("discarding stale export failure for %s", lid)
                return
            _logger.warning("exporting layer %s failed: %s", lid, e.message)
            self.session._set_error(e.message)
            self.tasks._fail("Error exporting layer", e.message)
            self.files._set_is_loading_layer_files(False)
            self.session._set_phase(SessionPhase.ERROR)
            return
        if generation != self._layer_generation:
            _logger.debug("discarding stale export for %s", lid)
            return

        self.files._set_entries(dedupe_entries(exported))
        self.tasks._complete("Layer exported successfully")

        try:
            resolved = await self._gateway.get_layer_files(lid)
        except BackendError as e:
            if generation != self._layer_generation:
                return
            # Keep the entries from the export; they are still valid.
            _logger.warning("resolving files for %s failed: %s", lid, e.message)
            self.session._set_error(e.message)
            self.files._set_is_loading_layer_files(False)
            self.session._set_phase(SessionPhase.LAYER_FILES_READY)
            return
        if generation != self._layer_generation:
            _logger.debug("discarding stale file list for %s", lid)
            return

        entries = dedupe_entries(resolved)
        self.files._set_entries(entries)
        self._cache.put(lid, entries)
        self.files._set_is_loading_layer_files(False)
        self.session._set_phase(SessionPhase.LAYER_FILES_READY)
        _logger.debug("layer %s ready with %d entries", lid, len(entries))

    async def extract_directory(self, path: str) -> bool:
        """Resolve the children of a lazily loaded directory.

        Returns whether the backend was asked. Directories that are already
        resolved or already being extracted are left alone.
        """

        p = str(path or "")
        lid = self.session._get_selected_layer_id()
        if not lid:
            raise ValidationError("Cannot extract directory: no layer selected")

        if self.files.is_loading_directory(p):
            _logger.debug("extraction already in flight: %s", p)
            return False

        entry = find_entry(self.files._get_entries(), p)
        if entry is None or not entry.is_dir:
            raise ValidationError(f"Not a known directory: {p}")
        if not entry.needs_loading:
            return False

        generation = self._layer_generation
        self.files._add_loading_directory(p)
        try:
            extracted = await self._gateway.extract_directory(p, lid)
        except BackendError as e:
            if generation == self._layer_generation:
                _logger.warning("extracting %s failed: %s", p, e.message)
                self.session._set_error(e.message or "Failed to extract directory")
            return True
        finally:
            if generation == self._layer_generation:
                self.files._remove_loading_directory(p)

        if generation != self._layer_generation:
            _logger.debug("discarding stale extraction of %s", p)
            return True

        merged = merge_extracted(self.files._get_entries(), p, extracted)
        self.files._set_entries(merged)
        self._cache.put(lid, merged)
        _logger.debug("extracted %s: %d entries, %d total", p, len(extracted), len(merged))
        return True

    # ---- file content ----
    async def load_file_content(self, entry: FileEntry | None) -> str | None:
        """Load a file's text into the viewer slot.

        Failures never leave the previous file's text on screen: unreadable
        content shows the backend's explanation, other failures show an
        "Error reading file: ..." placeholder.
        """

        if entry is None or entry.is_dir:
            return None

        self._file_generation += 1
        generation = self._file_generation
        self.files._set_selected_file(entry)
        self.files._set_is_loading_file_content(True)

        error: str | None = None
        try:
            content = await self._gateway.read_layer_file(entry.path)
        except ContentUnreadableError as e:
            content = e.message
        except BackendError as e:
            content = f"{FILE_ERROR_PREFIX}{e.message}"
            error = e.message or "Failed to read file content"

        if generation != self._file_generation:
            _logger.debug("discarding stale content for %s", entry.path)
            return None

        if error is not None:
            _logger.warning("reading %s failed: %s", entry.path, error)
            self.session._set_error(error)
        self.files._set_selected_file_content(content)
        self.files._set_is_loading_file_content(False)
        return content

    async def select_file(self, entry: FileEntry | None) -> str | None:
        return await self.load_file_content(entry)

    # ---- tree intents ----
    def set_search_query(self, query: str) -> None:
        self.files._set_search_query(query)

    async def toggle_expanded(self, node_id: str) -> bool:
        """Flip a directory node's expanded flag; expanding an unresolved one extracts it.

        Returns the new expanded state.
        """

        node = find_node(self.files._get_full_tree(), node_id)
        if node is None or not node.is_dir:
            raise ValidationError(f"Not a directory node: {node_id}")

        expanded = set(self.files._get_expanded())
        if node.id in expanded:
            expanded.discard(node.id)
            self.files._set_expanded(frozenset(expanded))
            return False

        expanded.add(node.id)
        self.files._set_expanded(frozenset(expanded))
        if node.needs_loading and not self.files.is_loading_directory(node.path):
            await self.extract_directory(node.path)
        return True

    async def open_node(self, node_id: str) -> None:
        """Directory nodes toggle; file nodes load their content."""

        node = find_node(self.files._get_full_tree(), node_id)
        if node is None:
            raise ValidationError(f"Unknown node: {node_id}")
        if node.is_dir:
            await self.toggle_expanded(node.id)
        else:
            await self.load_file_content(node.entry)

    # ---- build file ----
    def set_dockerfile_content(self, content: str) -> None:
        self.session._set_dockerfile_content(content)

    async def analyze_dockerfile(self) -> DockerfileAnalysis | None:
        content = self.session._get_dockerfile_content()
        if not content.strip():
            raise ValidationError("Dockerfile content is empty")
        try:
            analysis = await self._gateway.analyze_dockerfile(content)
        except BackendError as e:
            _logger.warning("dockerfile analysis failed: %s", e.message)
            self.session._set_error(e.message)
            return None
        if content != self.session._get_dockerfile_content():
            _logger.debug("discarding analysis of outdated dockerfile content")
            return None
        self.session._set_analysis(analysis)
        return analysis

    # ---- housekeeping ----
    async def cleanup(self) -> str | None:
        try:
            result = await self._gateway.cleanup_layers_images()
        except BackendError as e:
            _logger.warning("cleanup failed: %s", e.message)
            self.session._set_error(e.message)
            return None
        _logger.info("cleanup: %s", result)
        return result
