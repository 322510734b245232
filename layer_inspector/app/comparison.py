"""Two-slot layer selection and pairwise diff."""

from __future__ import annotations

from layer_inspector.app.state.comparison_state import MAX_SELECTED, ComparisonState
from layer_inspector.app.state.session_state import SessionState
from layer_inspector.app.state.tasks_state import TasksState
from layer_inspector.errors import BackendError, ValidationError
from layer_inspector.gateway import CommandGateway
from layer_inspector.logger import get_logger
from layer_inspector.models import LayerDiff

_logger = get_logger("comparison")

SELECT_TWO_MESSAGE = "Please select exactly 2 layers to compare"


class ComparisonController:
    """Owns ComparisonState; the session routes layer clicks here in comparison mode."""

    def __init__(
        self,
        gateway: CommandGateway,
        state: ComparisonState,
        session: SessionState,
        tasks: TasksState,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._session = session
        self._tasks = tasks
        # Bumped whenever mode or selection changes; a diff that returns under an
        # older generation no longer describes what is selected.
        self._generation = 0
        self._call_seq = 0

    @property
    def state(self) -> ComparisonState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state._get_active()

    def set_mode(self, enabled: bool) -> None:
        self._generation += 1
        self._state._set_selection([])
        self._state._set_result(None)
        self._state._set_is_comparing(False)
        self._state._set_active(enabled)

    def toggle_mode(self) -> bool:
        self.set_mode(not self.active)
        return self.active

    def reset(self) -> None:
        self.set_mode(False)

    def toggle_layer_selection(self, layer_id: str) -> list[str]:
        """Select or deselect a layer; a third selection evicts the oldest."""

        lid = str(layer_id or "")
        if not lid:
            raise ValidationError("Layer id is empty")

        sel = self._state._get_selection()
        if lid in sel:
            sel.remove(lid)
        elif len(sel) < MAX_SELECTED:
            sel.append(lid)
        else:
            evicted = sel.pop(0)
            sel.append(lid)
            _logger.debug("comparison selection full, evicted %s", evicted)

        self._generation += 1
        self._state._set_selection(sel)
        self._state._set_result(None)
        return sel

    async def compare(self) -> LayerDiff | None:
        """Diff the two selected layers.

        Raises ValidationError (without calling the backend) unless exactly two
        layers are selected. Returns None when the backend fails or the result
        went stale while in flight; the prior result is then left as it was.
        """

        sel = self._state._get_selection()
        if len(sel) != MAX_SELECTED:
            raise ValidationError(SELECT_TWO_MESSAGE)

        layer1_id, layer2_id = sel
        generation = self._generation
        self._call_seq += 1
        call = self._call_seq
        self._state._set_is_comparing(True)
        self._session._set_error(None)
        self._tasks._begin(f"Preparing to compare layers {layer1_id} and {layer2_id}...", 0.0)

        try:
            with self._tasks.follow(self._gateway):
                result = await self._gateway.compare_layers(layer1_id, layer2_id)
        except BackendError as e:
            _logger.warning("compare %s/%s failed: %s", layer1_id, layer2_id, e.message)
            self._session._set_error(e.message)
            self._tasks._fail("Error comparing layers", e.message)
            return None
        finally:
            if call == self._call_seq:
                self._state._set_is_comparing(False)

        if generation != self._generation:
            _logger.debug("discarding stale comparison %s/%s", layer1_id, layer2_id)
            return None

        self._state._set_result(result)
        self._tasks._complete("Layer comparison completed")
        return result
