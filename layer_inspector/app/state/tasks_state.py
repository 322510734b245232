from __future__ import annotations

from PySide6.QtCore import Property, QObject, Signal

from layer_inspector.gateway import CommandGateway, Unsubscribe
from layer_inspector.logger import get_logger
from layer_inspector.models import TaskStatus

_logger = get_logger("tasks")


class TaskSubscription:
    """Feeds backend task-status events into a TasksState for one operation.

    Closes itself when a completed status arrives; the owner closes it again when
    the operation ends (closing twice is harmless).
    """

    def __init__(self, tasks: TasksState, gateway: CommandGateway) -> None:
        self._tasks = tasks
        self._closed = False
        self._unsubscribe: Unsubscribe | None = gateway.subscribe_task_status(self._on_status)

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_status(self, status: TaskStatus) -> None:
        if self._closed:
            return
        self._tasks._set_status(status)
        if status.is_complete:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> TaskSubscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class TasksState(QObject):
    """The single live task-status slot.

    Every new operation overwrites the slot; a completed (or failed) status stays
    visible until the next operation starts.
    """

    statusChanged = Signal(object)
    messageChanged = Signal(str)
    progressChanged = Signal(float)
    runningChanged = Signal(bool)
    percentChanged = Signal(int)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._status: TaskStatus | None = None
        self._subscription: TaskSubscription | None = None

    def _get_status(self) -> TaskStatus | None:
        return self._status

    status = Property(object, _get_status, notify=statusChanged)  # type: ignore[arg-type]

    def _get_message(self) -> str:
        return self._status.message if self._status else ""

    message = Property(str, _get_message, notify=messageChanged)  # type: ignore[arg-type]

    def _get_progress(self) -> float:
        return float(self._status.progress) if self._status else 0.0

    progress = Property(float, _get_progress, notify=progressChanged)  # type: ignore[arg-type]

    def _get_running(self) -> bool:
        return bool(self._status is not None and not self._status.is_complete)

    running = Property(bool, _get_running, notify=runningChanged)  # type: ignore[arg-type]

    def _get_percent(self) -> int:
        return round(self._get_progress() * 100)

    percent = Property(int, _get_percent, notify=percentChanged)  # type: ignore[arg-type]

    def follow(self, gateway: CommandGateway) -> TaskSubscription:
        """Subscribe this slot to the backend's task-status events.

        Only the newest operation may write into the slot, so any subscription
        left over from an abandoned operation is closed first.
        """
        if self._subscription is not None:
            self._subscription.close()
        self._subscription = TaskSubscription(self, gateway)
        return self._subscription

    def _begin(self, message: str, progress: float = 0.0) -> None:
        """Start a new operation: detach the previous one's subscription, then show `message`."""
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._checkpoint(message, progress)

    @property
    def following(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    # ---- internal mutation helpers (called by the session) ----
    def _set_status(self, status: TaskStatus | None) -> None:
        if status == self._status:
            return
        old_message = self._get_message()
        old_progress = self._get_progress()
        old_running = self._get_running()
        old_percent = self._get_percent()

        self._status = status
        _logger.debug("task status: %s", status)
        self.statusChanged.emit(status)

        if self._get_message() != old_message:
            self.messageChanged.emit(self._get_message())
        if self._get_progress() != old_progress:
            self.progressChanged.emit(self._get_progress())
        if self._get_running() != old_running:
            self.runningChanged.emit(self._get_running())
        if self._get_percent() != old_percent:
            self.percentChanged.emit(self._get_percent())

    def _checkpoint(self, message: str, progress: float = 0.0) -> None:
        self._set_status(TaskStatus(message=message, progress=progress))

    def _complete(self, message: str) -> None:
        self._set_status(TaskStatus(message=message, progress=1.0, is_complete=True))

    def _fail(self, message: str, error: str) -> None:
        self._set_status(TaskStatus(message=message, progress=0.0, is_complete=True, error=error))
