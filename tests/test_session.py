from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from layer_inspector.app.session import FILE_ERROR_PREFIX, LayerSession
from layer_inspector.app.state.session_state import SessionPhase
from layer_inspector.errors import ValidationError
from layer_inspector.gateway import InvokeGateway
from layer_inspector.models import TaskStatus
from layer_inspector.settings_manager import SettingsManager
from layer_inspector.tree_builder import find_node
from tests.helpers.fake_gateway import FS, FakeGateway, fs_entry

NODE_MODULES = f"{FS}/app/node_modules"


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _gateway() -> FakeGateway:
    gw = FakeGateway()
    gw.layer_exports["L0"] = [
        fs_entry("app", is_dir=True),
        fs_entry("app/node_modules", is_dir=True, needs_loading=True),
        fs_entry("app/node_modules/old.js"),
        fs_entry("app/index.js", size="2KB"),
    ]
    gw.layer_exports["L1"] = [fs_entry("etc/hosts", size="1KB")]
    gw.layer_exports["L2"] = [fs_entry("usr/bin/env", size="4KB")]
    gw.extractions[NODE_MODULES] = [
        fs_entry("app/node_modules/a.js"),
        fs_entry("app/node_modules/b.js"),
        fs_entry("app/node_modules/c", is_dir=True, needs_loading=True),
    ]
    return gw


async def _ready_session(gw: FakeGateway, **kwargs) -> LayerSession:
    s = LayerSession(gw, **kwargs)
    await s.select_image("img-1")
    gw.calls.clear()
    return s


@pytest.mark.asyncio
async def test_select_image_auto_selects_first_layer() -> None:
    gw = _gateway()
    s = LayerSession(gw)

    image = await s.select_image("img-1")

    assert image is not None
    assert [name for name, _ in gw.calls] == [
        "retag_image",
        "export_image_layers",
        "export_single_layer",
        "get_layer_files",
    ]
    assert gw.args_of("export_single_layer") == [("L0",)]
    assert s.session.selectedImageId == "img-1"
    assert s.session.selectedLayerId == "L0"
    assert s.phase == SessionPhase.LAYER_FILES_READY
    assert s.files.isLoadingLayerFiles is False
    assert len(s.files._get_entries()) == 4
    assert s.tasks.message == "Layer exported successfully"


@pytest.mark.asyncio
async def test_select_image_rejects_empty_id() -> None:
    s = LayerSession(_gateway())
    with pytest.raises(ValidationError):
        await s.select_image("  ")
    assert s.phase == SessionPhase.IDLE


@pytest.mark.asyncio
async def test_tagging_failure_returns_to_idle() -> None:
    gw = _gateway()
    gw.failures["retag_image"] = "No such image: img-1"
    s = LayerSession(gw)

    assert await s.select_image("img-1") is None

    assert gw.count("export_image_layers") == 0
    assert s.phase == SessionPhase.IDLE
    assert s.session._get_image() is None
    assert s.session.error == "No such image: img-1"
    status = s.tasks._get_status()
    assert status.message == "Error tagging image"
    assert status.is_complete and status.error == "No such image: img-1"


@pytest.mark.asyncio
async def test_export_failure_returns_to_idle() -> None:
    gw = _gateway()
    gw.failures["export_image_layers"] = "docker save failed"
    s = LayerSession(gw)

    assert await s.select_image("img-1") is None

    assert s.phase == SessionPhase.IDLE
    assert s.session.error == "docker save failed"
    assert s.tasks.message == "Error exporting image layers"
    assert gw.count("export_single_layer") == 0


@pytest.mark.asyncio
async def test_export_progress_events_reach_the_task_slot_then_unsubscribe() -> None:
    gw = _gateway()
    gw.events["export_image_layers"] = [
        TaskStatus(message="Extracting layer 1/3", progress=0.3),
        TaskStatus(message="Extracting layer 2/3", progress=0.6),
    ]
    s = LayerSession(gw)
    seen: list[str] = []
    s.tasks.messageChanged.connect(seen.append)

    await s.select_image("img-1")

    assert "Extracting layer 1/3" in seen
    assert "Extracting layer 2/3" in seen
    assert seen.index("Extracting layer 2/3") < seen.index("Layer processing completed successfully")
    assert gw.channel.subscriber_count == 0
    assert s.tasks.following is False


@pytest.mark.asyncio
async def test_select_image_persists_last_image(tmp_path: Path) -> None:
    sm = SettingsManager(str(tmp_path / "settings.json"))
    await _ready_session(_gateway(), settings=sm)

    assert sm.last_image_id == "img-1"
    assert SettingsManager(str(tmp_path / "settings.json")).last_image_id == "img-1"


@pytest.mark.asyncio
async def test_select_layer_requires_known_layer() -> None:
    gw = _gateway()
    s = LayerSession(gw)
    with pytest.raises(ValidationError):
        await s.select_layer("L0")

    await s.select_image("img-1")
    with pytest.raises(ValidationError):
        await s.select_layer("L9")
    assert s.session.selectedLayerId == "L0"


@pytest.mark.asyncio
async def test_stale_layer_export_is_discarded() -> None:
    gw = _gateway()
    s = await _ready_session(gw)

    gw.hold("export_single_layer", "L1")
    slow = asyncio.create_task(s.select_layer("L1"))
    await settle()
    assert s.session.selectedLayerId == "L1"

    await s.select_layer("L2")
    assert s.session.selectedLayerId == "L2"

    gw.release("export_single_layer", "L1")
    await slow

    assert s.session.selectedLayerId == "L2"
    assert [e.path for e in s.files._get_entries()] == [f"{FS}/usr/bin/env"]
    assert s.phase == SessionPhase.LAYER_FILES_READY
    assert gw.args_of("get_layer_files") == [("L2",)]
    assert s.tasks.message == "Layer exported successfully"


@pytest.mark.asyncio
async def test_layer_export_failure_sets_error_phase() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    gw.failures["export_single_layer"] = "layer tar missing"

    await s.select_layer("L1")

    assert s.phase == SessionPhase.ERROR
    assert s.session.error == "layer tar missing"
    assert s.files.isLoadingLayerFiles is False
    assert s.tasks._get_status().error == "layer tar missing"


@pytest.mark.asyncio
async def test_file_listing_failure_keeps_exported_entries() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    gw.failures["get_layer_files"] = "listing failed"

    await s.select_layer("L1")

    assert s.phase == SessionPhase.LAYER_FILES_READY
    assert [e.path for e in s.files._get_entries()] == [f"{FS}/etc/hosts"]
    assert s.session.error == "listing failed"


@pytest.mark.asyncio
async def test_reselecting_a_layer_shows_cached_entries_while_exporting() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    await s.select_layer("L1")

    gw.hold("export_single_layer", "L0")
    task = asyncio.create_task(s.select_layer("L0"))
    await settle()

    assert s.files.isLoadingLayerFiles is True
    assert len(s.files._get_entries()) == 4

    gw.release("export_single_layer", "L0")
    await task
    assert s.files.isLoadingLayerFiles is False


@pytest.mark.asyncio
async def test_extract_directory_merges_children() -> None:
    gw = _gateway()
    s = await _ready_session(gw)

    assert await s.extract_directory(NODE_MODULES) is True

    paths = [e.path for e in s.files._get_entries()]
    under = sorted(p for p in paths if p.startswith(NODE_MODULES + "/"))
    assert under == sorted(e.path for e in gw.extractions[NODE_MODULES])
    assert f"{FS}/app/index.js" in paths
    assert len(paths) == len(set(paths))
    assert gw.args_of("extract_directory") == [(NODE_MODULES, "L0")]

    node = find_node(s.files._get_full_tree(), "app/node_modules")
    assert node is not None and node.needs_loading is False
    # Resolved directories are not extracted again.
    assert await s.extract_directory(NODE_MODULES) is False
    assert gw.count("extract_directory") == 1


@pytest.mark.asyncio
async def test_extract_directory_in_flight_is_not_repeated() -> None:
    gw = _gateway()
    s = await _ready_session(gw)

    gw.hold("extract_directory")
    first = asyncio.create_task(s.extract_directory(NODE_MODULES))
    await settle()

    assert s.files.is_loading_directory(NODE_MODULES)
    assert s.files.loadingDirectories == [NODE_MODULES]
    assert await s.extract_directory(NODE_MODULES) is False
    assert gw.count("extract_directory") == 1

    gw.release("extract_directory")
    assert await first is True
    assert not s.files.is_loading_directory(NODE_MODULES)


@pytest.mark.asyncio
async def test_extract_directory_failure_allows_retry() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    gw.failures["extract_directory"] = "tar: not found"

    assert await s.extract_directory(NODE_MODULES) is True
    assert not s.files.is_loading_directory(NODE_MODULES)
    assert s.session.error == "tar: not found"

    del gw.failures["extract_directory"]
    assert await s.extract_directory(NODE_MODULES) is True
    assert gw.count("extract_directory") == 2


@pytest.mark.asyncio
async def test_extract_directory_rejects_unknown_paths() -> None:
    s = await _ready_session(_gateway())
    with pytest.raises(ValidationError):
        await s.extract_directory(f"{FS}/nope")
    with pytest.raises(ValidationError):
        await s.extract_directory(f"{FS}/app/index.js")


@pytest.mark.asyncio
async def test_toggle_expanded_extracts_unresolved_directory() -> None:
    gw = _gateway()
    s = await _ready_session(gw)

    assert await s.toggle_expanded("app/node_modules") is True

    assert gw.count("extract_directory") == 1
    node = find_node(s.files._get_full_tree(), "app/node_modules")
    assert node.expanded is True
    assert [c.name for c in node.children] == ["c", "a.js", "b.js"]

    assert await s.toggle_expanded("app/node_modules") is False
    assert gw.count("extract_directory") == 1


@pytest.mark.asyncio
async def test_file_too_large_shows_backend_message() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    gw.failures["read_layer_file"] = "File is too large to display"

    entry = fs_entry("app/index.js", size="2KB")
    content = await s.load_file_content(entry)

    assert content == "File is too large to display"
    assert s.files.selectedFileContent == "File is too large to display"
    assert s.files.isLoadingFileContent is False
    assert s.session.error == ""


@pytest.mark.asyncio
async def test_file_read_error_shows_placeholder_and_sets_error() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    gw.failures["read_layer_file"] = "permission denied"

    await s.load_file_content(fs_entry("app/index.js"))

    assert s.files.selectedFileContent == f"{FILE_ERROR_PREFIX}permission denied"
    assert s.files.isLoadingFileContent is False
    assert s.session.error == "permission denied"


@pytest.mark.asyncio
async def test_only_latest_file_click_is_committed() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    a = fs_entry("app/index.js")
    b = fs_entry("etc/hosts")
    gw.file_contents = {a.path: "console.log(1)", b.path: "127.0.0.1 localhost"}

    gw.hold("read_layer_file", a.path)
    slow = asyncio.create_task(s.load_file_content(a))
    await settle()
    await s.load_file_content(b)

    gw.release("read_layer_file", a.path)
    assert await slow is None

    assert s.files._get_selected_file() == b
    assert s.files.selectedFileContent == "127.0.0.1 localhost"


@pytest.mark.asyncio
async def test_directories_are_not_read_as_files() -> None:
    gw = _gateway()
    s = await _ready_session(gw)

    assert await s.load_file_content(fs_entry("app", is_dir=True)) is None
    assert gw.count("read_layer_file") == 0


@pytest.mark.asyncio
async def test_open_node_loads_file_content() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    gw.file_contents[f"{FS}/app/index.js"] = "x"

    await s.open_node("app/index.js")

    assert s.files.selectedFileContent == "x"


@pytest.mark.asyncio
async def test_selecting_a_new_image_clears_layer_state() -> None:
    gw = _gateway()
    s = await _ready_session(gw)
    await s.load_file_content(fs_entry("app/index.js"))
    s.set_search_query("index")

    gw.hold("export_image_layers")
    task = asyncio.create_task(s.select_image("img-2"))
    await settle()

    assert s.phase == SessionPhase.IMAGE_LOADING
    assert s.session._get_image() is None
    assert s.session.selectedLayerId == ""
    assert s.files._get_selected_file() is None
    assert s.files._get_entries() == []

    gw.release("export_image_layers")
    await task


@pytest.mark.asyncio
async def test_refresh_images_lists_available_images() -> None:
    gw = _gateway()
    s = LayerSession(gw)

    images = await s.refresh_images()

    assert [i.display_name for i in images] == ["app:latest"]
    assert s.session.isLoadingImages is False

    gw.failures["list_available_images"] = "daemon not running"
    await s.refresh_images()
    assert s.session.error == "daemon not running"
    assert s.session.isLoadingImages is False


@pytest.mark.asyncio
async def test_analyze_dockerfile() -> None:
    gw = _gateway()
    s = LayerSession(gw)

    with pytest.raises(ValidationError):
        await s.analyze_dockerfile()

    s.set_dockerfile_content("FROM alpine\nRUN apk add curl\n")
    result = await s.analyze_dockerfile()

    assert result is gw.analysis
    assert s.session._get_analysis() is gw.analysis
    assert gw.args_of("analyze_dockerfile") == [("FROM alpine\nRUN apk add curl\n",)]


@pytest.mark.asyncio
async def test_cleanup_returns_backend_confirmation() -> None:
    gw = _gateway()
    s = LayerSession(gw)

    assert await s.cleanup() == "Removed 1 image"

    gw.failures["cleanup_layers_images"] = "image is in use"
    assert await s.cleanup() is None
    assert s.session.error == "image is in use"


@pytest.mark.asyncio
async def test_malformed_export_fails_the_image_cleanly() -> None:
    async def invoke(command: str, args: dict) -> object:
        return "tagged" if command == "retag_image_for_layers" else None

    s = LayerSession(InvokeGateway(invoke, lambda event, handler: lambda: None))

    assert await s.select_image("img-1") is None

    assert s.phase == SessionPhase.IDLE
    assert s.session.error.startswith("Malformed response from export_image_layers")
    status = s.tasks._get_status()
    assert status.message == "Error exporting image layers"
    assert status.is_complete and status.failed


@pytest.mark.asyncio
async def test_abandoned_export_events_do_not_reach_next_operation() -> None:
    gw = _gateway()
    s = LayerSession(gw)

    gw.hold("export_image_layers")
    first = asyncio.create_task(s.select_image("img-1"))
    await settle()
    assert s.tasks.following

    gw.hold("retag_image", "img-2")
    second = asyncio.create_task(s.select_image("img-2"))
    await settle()
    assert not s.tasks.following
    assert gw.channel.subscriber_count == 0

    gw.channel.publish(TaskStatus(message="img-1 export 70%", progress=0.7))
    assert s.tasks.message == "Tagging image with 'layers' tag..."

    gw.release("retag_image", "img-2")
    await settle()
    gw.release("export_image_layers")
    assert await first is None
    assert await second is not None
    assert s.session.selectedImageId == "img-2"
    assert s.phase == SessionPhase.LAYER_FILES_READY
