"""Exception types shared by the gateway and the session orchestrator."""

from __future__ import annotations


class LayerInspectorError(Exception):
    """Base class for all layer_inspector errors."""


class ValidationError(LayerInspectorError):
    """A local precondition failed; no backend call was made."""


class BackendError(LayerInspectorError):
    """A backend command failed.

    `message` is the backend's own error string and is what the session surfaces
    to the user; `command` names the backend command for logging.
    """

    def __init__(self, message: str, command: str = "") -> None:
        super().__init__(message)
        self.message = str(message)
        self.command = str(command)

    def __str__(self) -> str:
        return self.message


class ContentUnreadableError(BackendError):
    """File content cannot be shown as text (binary, oversized or not UTF-8)."""
