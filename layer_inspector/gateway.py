"""Typed boundary to the native layer backend.

The backend is reached through two primitives:

- ``invoke(command, args) -> awaitable result``: request/response, failing with
  an error string.
- ``listen(event, handler) -> unlisten``: fire-and-forget event subscription.

`CommandGateway` is the contract the session depends on. `InvokeGateway`
implements it on top of the two primitives and turns raw payloads into the
records from `layer_inspector.models`.
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from layer_inspector.errors import BackendError, ContentUnreadableError
from layer_inspector.logger import get_logger
from layer_inspector.models import (
    DockerfileAnalysis,
    FileEntry,
    ImageInfo,
    ImageSummary,
    LayerDiff,
    TaskStatus,
)

_logger = get_logger("gateway")

TASK_STATUS_EVENT = "task_status"

TaskStatusHandler = Callable[[TaskStatus], None]
Unsubscribe = Callable[[], None]
T = TypeVar("T")
InvokeFn = Callable[[str, dict[str, Any]], Awaitable[Any]]
ListenFn = Callable[[str, Callable[[Any], None]], Unsubscribe]

# Substrings the backend uses when a file cannot be shown as text.
_UNREADABLE_MARKERS = (
    "too large to display",
    "binary file",
    "invalid utf-8",
)


def is_unreadable_message(message: str) -> bool:
    m = str(message).lower()
    return any(marker in m for marker in _UNREADABLE_MARKERS)


class CommandGateway(ABC):
    """Async command contract of the layer backend."""

    @abstractmethod
    async def retag_image(self, image_id: str) -> str:
        """Tag the image for export; must complete before export_image_layers."""
        raise NotImplementedError()

    @abstractmethod
    async def export_image_layers(self) -> ImageInfo:
        """Export the most recently retagged image."""
        raise NotImplementedError()

    @abstractmethod
    async def export_single_layer(self, layer_id: str) -> list[FileEntry]:
        raise NotImplementedError()

    @abstractmethod
    async def get_layer_files(self, layer_id: str) -> list[FileEntry]:
        raise NotImplementedError()

    @abstractmethod
    async def extract_directory(self, path: str, layer_id: str) -> list[FileEntry]:
        raise NotImplementedError()

    @abstractmethod
    async def read_layer_file(self, path: str) -> str:
        """Text content; raises ContentUnreadableError for binary/oversized files."""
        raise NotImplementedError()

    @abstractmethod
    async def compare_layers(self, layer1_id: str, layer2_id: str) -> LayerDiff:
        raise NotImplementedError()

    @abstractmethod
    async def list_available_images(self) -> list[ImageSummary]:
        raise NotImplementedError()

    @abstractmethod
    async def analyze_dockerfile(self, content: str) -> DockerfileAnalysis:
        raise NotImplementedError()

    @abstractmethod
    async def cleanup_layers_images(self) -> str:
        raise NotImplementedError()

    @abstractmethod
    def subscribe_task_status(self, handler: TaskStatusHandler) -> Unsubscribe:
        """Deliver task-status events to `handler` until the returned callable runs."""
        raise NotImplementedError()


class InvokeGateway(CommandGateway):
    """CommandGateway over an `invoke` coroutine function and a `listen` function."""

    def __init__(self, invoke: InvokeFn, listen: ListenFn) -> None:
        self._invoke = invoke
        self._listen = listen

    async def _call(self, command: str, **args: Any) -> Any:
        _logger.debug("invoke %s %s", command, args)
        try:
            return await self._invoke(command, args)
        except BackendError:
            raise
        except Exception as e:
            msg = str(e) or type(e).__name__
            _logger.debug("invoke %s failed: %s", command, msg)
            raise BackendError(msg, command) from e

    async def _fetch(self, command: str, parse: Callable[[Any], T], **args: Any) -> T:
        """Invoke `command` and parse its payload; a malformed payload is a BackendError."""
        payload = await self._call(command, **args)
        try:
            return parse(payload)
        except (TypeError, ValueError, AttributeError, KeyError) as e:
            msg = f"Malformed response from {command}: {e}"
            _logger.debug("%s payload=%r", msg, payload)
            raise BackendError(msg, command) from e

    async def retag_image(self, image_id: str) -> str:
        return await self._fetch("retag_image_for_layers", _text, imageId=image_id)

    async def export_image_layers(self) -> ImageInfo:
        return await self._fetch("export_image_layers", ImageInfo.from_payload)

    async def export_single_layer(self, layer_id: str) -> list[FileEntry]:
        return await self._fetch("export_single_layer", _entries, layerId=layer_id)

    async def get_layer_files(self, layer_id: str) -> list[FileEntry]:
        return await self._fetch("get_layer_files", _entries, layerId=layer_id)

    async def extract_directory(self, path: str, layer_id: str) -> list[FileEntry]:
        return await self._fetch("extract_directory", _entries, dirPath=path, layerId=layer_id)

    async def read_layer_file(self, path: str) -> str:
        try:
            return await self._fetch("read_layer_file", _text, filePath=path)
        except BackendError as e:
            if is_unreadable_message(e.message):
                raise ContentUnreadableError(e.message, e.command) from e
            raise

    async def compare_layers(self, layer1_id: str, layer2_id: str) -> LayerDiff:
        return await self._fetch("compare_layers", LayerDiff.from_payload, layer1Id=layer1_id, layer2Id=layer2_id)

    async def list_available_images(self) -> list[ImageSummary]:
        return await self._fetch("get_docker_images", _image_summaries)

    async def analyze_dockerfile(self, content: str) -> DockerfileAnalysis:
        return await self._fetch("analyze_dockerfile", DockerfileAnalysis.from_payload, content=content)

    async def cleanup_layers_images(self) -> str:
        return await self._fetch("cleanup_layers_images", _text)

    def subscribe_task_status(self, handler: TaskStatusHandler) -> Unsubscribe:
        def _on_event(payload: Any) -> None:
            # Event wrappers carry the status under "payload".
            if isinstance(payload, dict) and isinstance(payload.get("payload"), dict):
                payload = payload["payload"]
            if not isinstance(payload, dict):
                _logger.debug("ignoring malformed task status event: %r", payload)
                return
            try:
                status = TaskStatus.from_payload(payload)
            except (TypeError, ValueError) as e:
                _logger.debug("ignoring malformed task status event %r: %s", payload, e)
                return
            handler(status)

        unlisten = self._listen(TASK_STATUS_EVENT, _on_event)

        def _unsubscribe() -> None:
            with contextlib.suppress(Exception):
                unlisten()

        return _unsubscribe


def _entries(payload: Any) -> list[FileEntry]:
    return [FileEntry.from_payload(p) for p in (payload or [])]


def _image_summaries(payload: Any) -> list[ImageSummary]:
    return [ImageSummary.from_payload(p) for p in (payload or [])]


def _text(payload: Any) -> str:
    return "" if payload is None else str(payload)
