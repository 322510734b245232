from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal

from layer_inspector.models import LayerDiff

MAX_SELECTED = 2


class ComparisonState(QObject):
    """State bound by the layer comparison UI."""

    activeChanged = Signal(bool)
    selectionChanged = Signal()
    isComparingChanged = Signal(bool)
    resultChanged = Signal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._active = False
        self._selection: list[str] = []
        self._is_comparing = False
        self._result: LayerDiff | None = None

    def _get_active(self) -> bool:
        return bool(self._active)

    active = Property(bool, _get_active, notify=activeChanged)  # type: ignore[arg-type]

    def _get_selection(self) -> list[str]:
        return list(self._selection)

    selection = Property(list, _get_selection, notify=selectionChanged)  # type: ignore[arg-type]

    def _get_is_comparing(self) -> bool:
        return bool(self._is_comparing)

    isComparing = Property(bool, _get_is_comparing, notify=isComparingChanged)  # type: ignore[arg-type]

    def _get_result(self) -> LayerDiff | None:
        return self._result

    result = Property(object, _get_result, notify=resultChanged)  # type: ignore[arg-type]

    # ---- internal mutation helpers (called by ComparisonController) ----
    def _set_active(self, value: bool) -> None:
        v = bool(value)
        if v == self._active:
            return
        self._active = v
        self.activeChanged.emit(v)

    def _set_selection(self, layer_ids: list[str]) -> None:
        sel = list(layer_ids)
        if len(sel) > MAX_SELECTED:
            raise ValueError(f"at most {MAX_SELECTED} layers can be selected, got {len(sel)}")
        if sel == self._selection:
            return
        self._selection = sel
        self.selectionChanged.emit()

    def _set_is_comparing(self, value: bool) -> None:
        v = bool(value)
        if v == self._is_comparing:
            return
        self._is_comparing = v
        self.isComparingChanged.emit(v)

    def _set_result(self, result: LayerDiff | None) -> None:
        if result is self._result:
            return
        self._result = result
        self.resultChanged.emit(result)
