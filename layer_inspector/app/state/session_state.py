from __future__ import annotations

from enum import Enum

from PySide6.QtCore import Property, QObject, Signal

from layer_inspector.models import DockerfileAnalysis, ImageInfo, ImageSummary


class SessionPhase(str, Enum):
    IDLE = "idle"
    IMAGE_LOADING = "imageLoading"
    LAYERS_READY = "layersReady"
    LAYER_FILES_LOADING = "layerFilesLoading"
    LAYER_FILES_READY = "layerFilesReady"
    ERROR = "error"


class SessionState(QObject):
    """Image/layer identity of the inspection session.

    Read-only from the outside; LayerSession mutates it through the `_set_*`
    helpers, which only emit when the value actually changes.
    """

    phaseChanged = Signal(str)
    imageChanged = Signal(object)
    selectedImageIdChanged = Signal(str)
    selectedLayerIdChanged = Signal(str)
    selectedLayerNumberChanged = Signal(int)
    availableImagesChanged = Signal()
    isLoadingImagesChanged = Signal(bool)
    errorChanged = Signal(str)
    dockerfileContentChanged = Signal(str)
    analysisChanged = Signal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._phase = SessionPhase.IDLE
        self._image: ImageInfo | None = None
        self._selected_image_id = ""
        self._selected_layer_id = ""
        # -1 means the layer id carries no number.
        self._selected_layer_number = -1
        self._available_images: list[ImageSummary] = []
        self._is_loading_images = False
        self._error = ""
        self._dockerfile_content = ""
        self._analysis: DockerfileAnalysis | None = None

    # ---- read-only properties (mutate via session) ----
    def _get_phase(self) -> SessionPhase:
        return self._phase

    def _get_phase_name(self) -> str:
        return self._phase.value

    phase = Property(str, _get_phase_name, notify=phaseChanged)  # type: ignore[arg-type]

    def _get_image(self) -> ImageInfo | None:
        return self._image

    image = Property(object, _get_image, notify=imageChanged)  # type: ignore[arg-type]

    def _get_selected_image_id(self) -> str:
        return str(self._selected_image_id)

    selectedImageId = Property(str, _get_selected_image_id, notify=selectedImageIdChanged)  # type: ignore[arg-type]

    def _get_selected_layer_id(self) -> str:
        return str(self._selected_layer_id)

    selectedLayerId = Property(str, _get_selected_layer_id, notify=selectedLayerIdChanged)  # type: ignore[arg-type]

    def _get_selected_layer_number(self) -> int:
        return int(self._selected_layer_number)

    selectedLayerNumber = Property(int, _get_selected_layer_number, notify=selectedLayerNumberChanged)  # type: ignore[arg-type]

    def _get_available_images(self) -> list[ImageSummary]:
        return list(self._available_images)

    availableImages = Property(list, _get_available_images, notify=availableImagesChanged)  # type: ignore[arg-type]

    def _get_is_loading_images(self) -> bool:
        return bool(self._is_loading_images)

    isLoadingImages = Property(bool, _get_is_loading_images, notify=isLoadingImagesChanged)  # type: ignore[arg-type]

    def _get_error(self) -> str:
        return str(self._error)

    error = Property(str, _get_error, notify=errorChanged)  # type: ignore[arg-type]

    def _get_dockerfile_content(self) -> str:
        return str(self._dockerfile_content)

    dockerfileContent = Property(str, _get_dockerfile_content, notify=dockerfileContentChanged)  # type: ignore[arg-type]

    def _get_analysis(self) -> DockerfileAnalysis | None:
        return self._analysis

    analysis = Property(object, _get_analysis, notify=analysisChanged)  # type: ignore[arg-type]

    # ---- internal mutation helpers (called by session) ----
    def _set_phase(self, phase: SessionPhase) -> None:
        if phase == self._phase:
            return
        self._phase = phase
        self.phaseChanged.emit(phase.value)

    def _set_image(self, image: ImageInfo | None) -> None:
        if image is self._image:
            return
        self._image = image
        self.imageChanged.emit(image)

    def _set_selected_image_id(self, image_id: str) -> None:
        i = str(image_id or "")
        if i == self._selected_image_id:
            return
        self._selected_image_id = i
        self.selectedImageIdChanged.emit(i)

    def _set_selected_layer(self, layer_id: str, number: int | None) -> None:
        lid = str(layer_id or "")
        num = -1 if number is None else int(number)
        if lid != self._selected_layer_id:
            self._selected_layer_id = lid
            self.selectedLayerIdChanged.emit(lid)
        if num != self._selected_layer_number:
            self._selected_layer_number = num
            self.selectedLayerNumberChanged.emit(num)

    def _set_available_images(self, images: list[ImageSummary]) -> None:
        self._available_images = list(images)
        self.availableImagesChanged.emit()

    def _set_is_loading_images(self, value: bool) -> None:
        v = bool(value)
        if v == self._is_loading_images:
            return
        self._is_loading_images = v
        self.isLoadingImagesChanged.emit(v)

    def _set_error(self, error: str | None) -> None:
        e = str(error or "")
        if e == self._error:
            return
        self._error = e
        self.errorChanged.emit(e)

    def _set_dockerfile_content(self, content: str) -> None:
        c = str(content or "")
        if c == self._dockerfile_content:
            return
        self._dockerfile_content = c
        self.dockerfileContentChanged.emit(c)

    def _set_analysis(self, analysis: DockerfileAnalysis | None) -> None:
        if analysis == self._analysis:
            return
        self._analysis = analysis
        self.analysisChanged.emit(analysis)
