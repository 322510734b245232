"""Container image layer inspection core.

The entry point for a UI is `layer_inspector.app.backend.BackendFacade`; the
orchestration itself lives in `layer_inspector.app.session.LayerSession`.
"""
