from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Coroutine
from typing import Any

from PySide6.QtCore import Property, QObject, Signal, Slot

from layer_inspector.app.session import LayerSession
from layer_inspector.errors import LayerInspectorError, ValidationError
from layer_inspector.gateway import CommandGateway
from layer_inspector.logger import get_logger
from layer_inspector.models import FileEntry, TaskStatus
from layer_inspector.settings_manager import SettingsManager

_logger = get_logger("backend")


class BackendFacade(QObject):
    """Single backend object exposed to the UI.

    UI → Python: backend.dispatch(cmd, payload)
    Python → UI: backend.event(dict), backend.taskEvent(dict)
    UI bindings: backend.session / backend.files / backend.tasks / backend.comparison

    Commands that talk to the backend run as tasks on the running asyncio loop;
    dispatch() returns the scheduled task (None for synchronous commands).
    """

    # QObject already has an .event() handler method, so we must not shadow it.
    # Expose the signal name as "event" while keeping a safe Python attribute.
    event_ = Signal(object, name="event")
    taskEvent = Signal(object, name="taskEvent")

    def __init__(
        self,
        gateway: CommandGateway | None = None,
        settings: SettingsManager | None = None,
        session: LayerSession | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        if session is None:
            if gateway is None:
                raise ValueError("BackendFacade needs a gateway or a session")
            session = LayerSession(gateway, settings=settings)
        self._session = session
        self._settings_mgr = settings
        self._pending: set[asyncio.Task] = set()

        self._session.tasks.statusChanged.connect(self._on_task_status)

    # ---- expose state objects to the UI ----
    def _get_session(self) -> QObject:
        return self._session.session

    sessionState = Property(QObject, _get_session, constant=True)  # type: ignore[arg-type]

    def _get_files(self) -> QObject:
        return self._session.files

    filesState = Property(QObject, _get_files, constant=True)  # type: ignore[arg-type]

    def _get_tasks(self) -> QObject:
        return self._session.tasks

    tasksState = Property(QObject, _get_tasks, constant=True)  # type: ignore[arg-type]

    def _get_comparison(self) -> QObject:
        return self._session.comparison_state

    comparisonState = Property(QObject, _get_comparison, constant=True)  # type: ignore[arg-type]

    # For ergonomic UI usage:
    #   backend.session / backend.files / backend.tasks / backend.comparison
    session = Property(QObject, _get_session, constant=True)  # type: ignore[arg-type]
    files = Property(QObject, _get_files, constant=True)  # type: ignore[arg-type]
    tasks = Property(QObject, _get_tasks, constant=True)  # type: ignore[arg-type]
    comparison = Property(QObject, _get_comparison, constant=True)  # type: ignore[arg-type]

    @property
    def layer_session(self) -> LayerSession:
        return self._session

    # ---- command entry ----
    @Slot(str, "QVariant")  # type: ignore[call-overload]
    def dispatch(self, cmd: str, payload: object | None = None) -> asyncio.Task | None:  # noqa: PLR0911, PLR0912
        command = str(cmd or "").strip()
        if not command:
            self._emit_error("Empty cmd")
            return None

        s = self._session

        if command == "log":
            self._handle_log_cmd(payload)
            return None

        if command == "refreshImages":
            return self._schedule(command, s.refresh_images())

        if command == "selectImage":
            image_id = str(_get_payload_value(payload, "imageId", default=payload) or "")
            return self._schedule(command, s.select_image(image_id))

        if command == "selectLayer":
            layer_id = str(_get_payload_value(payload, "layerId", default=payload) or "")
            return self._schedule(command, s.select_layer(layer_id))

        if command == "extractDirectory":
            path = str(_get_payload_value(payload, "path", default=payload) or "")
            return self._schedule(command, s.extract_directory(path))

        if command == "loadFile":
            return self._schedule(command, s.load_file_content(_coerce_entry(payload)))

        if command == "openNode":
            node_id = str(_get_payload_value(payload, "id", default=payload) or "")
            return self._schedule(command, s.open_node(node_id))

        if command == "toggleExpanded":
            node_id = str(_get_payload_value(payload, "id", default=payload) or "")
            return self._schedule(command, s.toggle_expanded(node_id))

        if command == "setSearchQuery":
            s.set_search_query(str(_get_payload_value(payload, "query", default=payload) or ""))
            return None

        if command == "toggleComparisonMode":
            s.comparison.toggle_mode()
            return None

        if command == "toggleLayerSelection":
            layer_id = str(_get_payload_value(payload, "layerId", default=payload) or "")
            self._run_sync(command, lambda: s.comparison.toggle_layer_selection(layer_id))
            return None

        if command == "compare":
            return self._schedule(command, s.comparison.compare())

        if command == "setDockerfileContent":
            s.set_dockerfile_content(str(_get_payload_value(payload, "content", default=payload) or ""))
            return None

        if command == "analyzeDockerfile":
            return self._schedule(command, s.analyze_dockerfile())

        if command == "cleanup":
            return self._schedule(command, s.cleanup())

        self._emit_error(f"Unknown cmd: {command}", level="warning")
        return None

    # ---- scheduling ----
    def _schedule(self, command: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            self._emit_error(f"No running event loop for {command}")
            return None

        task = loop.create_task(self._guard(command, coro))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _guard(self, command: str, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await coro
        except ValidationError as e:
            self._emit_toast(str(e), level="warning")
        except LayerInspectorError as e:
            _logger.error("%s failed: %s", command, e)
            self._emit_error(str(e))
        return None

    def _run_sync(self, command: str, fn: Any) -> None:
        try:
            fn()
        except ValidationError as e:
            self._emit_toast(str(e), level="warning")
        except LayerInspectorError as e:
            _logger.error("%s failed: %s", command, e)
            self._emit_error(str(e))

    async def wait_idle(self) -> None:
        """Await every command task scheduled so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ---- events ----
    def _emit_error(self, message: str, *, level: str = "error") -> None:
        self.event_.emit({"type": "event", "name": "error", "level": level, "message": message})

    def _emit_toast(self, message: str, *, level: str) -> None:
        self.event_.emit({"type": "event", "name": "toast", "level": level, "message": message})

    def _on_task_status(self, status: TaskStatus | None) -> None:
        if status is None:
            return
        if status.is_complete:
            state = "error" if status.error else "finished"
        else:
            state = "progress"
        self.taskEvent.emit(
            {
                "type": "task",
                "state": state,
                "message": status.message,
                "percent": round(status.progress * 100),
                "error": status.error,
            }
        )

    def _handle_log_cmd(self, payload: object | None) -> None:
        level = str(_get_payload_value(payload, "level", default="debug")).lower()
        msg = str(_get_payload_value(payload, "message", default=""))
        if not msg:
            return

        # integrate into Python logging pipeline
        if level == "info":
            _logger.info("[UI] %s", msg)
        elif level in {"warn", "warning"}:
            _logger.warning("[UI] %s", msg)
        elif level == "error":
            _logger.error("[UI] %s", msg)
        else:
            _logger.debug("[UI] %s", msg)


def _coerce_entry(payload: object | None) -> FileEntry | None:
    """Accept a FileEntry, an entry dict, or {"entry": ...}."""

    if isinstance(payload, FileEntry):
        return payload
    inner = _get_payload_value(payload, "entry", default=payload)
    if isinstance(inner, FileEntry):
        return inner
    if isinstance(inner, dict) and inner.get("path"):
        return FileEntry.from_payload(inner)
    return None


def _get_payload_value(payload: object | None, key: str, *, default: Any) -> Any:
    """Extract a value from a UI payload.

    Supports:
    - dict-like payloads (Python dict)
    - None
    - otherwise returns default

    We intentionally keep schema small and explicit.
    """

    if payload is None:
        return default

    # QML often passes a JS object which arrives as QJSValue/QVariant.
    # Convert to a Python mapping when possible.
    if payload.__class__.__name__ == "QJSValue" and hasattr(payload, "toVariant"):
        with contextlib.suppress(Exception):
            payload = payload.toVariant()  # type: ignore[assignment, attr-defined]

    if isinstance(payload, dict):
        return payload.get(key, default)

    return default
