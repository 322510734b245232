"""UI-facing application facade and state objects.

This package implements the UI↔Python boundary:
- Single command entry: backend.dispatch(cmd, payload)
- UI binding via state QObjects (backend.session / backend.files / backend.tasks / backend.comparison)
- Python→UI notifications via backend.event / backend.taskEvent
"""
