"""Tests for PluginManager: discovery, registration, and lifecycle hooks."""

from __future__ import annotations

from typing import Any

import pytest

from artcards.infrastructure.workspace import Workspace
from artcards.plugins.hookspecs import hookimpl
from artcards.plugins.manager import PluginManager
from artcards.services.cards import CardService
from artcards.services.projects import ProjectService
from tests.conftest import generate_images, make_card, make_project


class _Recorder:
    """Collects every lifecycle event it sees."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    @hookimpl
    def post_save_project(self, project_id: str, project: dict[str, Any]) -> None:
        self.events.append(("post_save_project", {"project_id": project_id}))

    @hookimpl
    def post_save_card(self, project_id: str, card_id: str, card: dict[str, Any]) -> None:
        self.events.append(("post_save_card", {"card_id": card_id}))

    @hookimpl
    def post_delete_project(
        self, project_id: str, card_ids: list[str], files_removed: bool
    ) -> None:
        self.events.append(
            ("post_delete_project", {"card_ids": card_ids, "files_removed": files_removed})
        )

    @hookimpl
    def post_generate(
        self, project_id: str, card_id: str, paths: list[str], failures: int
    ) -> None:
        self.events.append(("post_generate", {"paths": paths, "failures": failures}))


class _Exploding:
    @hookimpl
    def post_save_project(self, project_id: str, project: dict[str, Any]) -> None:
        raise RuntimeError("plugin bug")


class _ClassPlugin:
    @hookimpl
    def post_delete_card(self, project_id: str, card_id: str, files_removed: bool) -> None:
        pass


class TestPluginManager:
    def test_register_plugin(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_Recorder(), name="recorder")
        assert "recorder" in pm.list_plugin_names()

    def test_register_plugin_default_name(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_Recorder())
        assert "_Recorder" in pm.list_plugin_names()

    def test_unregister_plugin(self) -> None:
        pm = PluginManager()
        plugin = _Recorder()
        pm.register_plugin(plugin, name="recorder")
        pm.unregister(plugin)
        assert "recorder" not in pm.list_plugin_names()

    def test_discover_marks_loaded(self) -> None:
        pm = PluginManager()
        pm.discover_and_load()
        assert pm.is_loaded is True

    def test_call_dispatches_payload(self) -> None:
        pm = PluginManager()
        plugin = _Recorder()
        pm.register_plugin(plugin)
        pm.call("post_save_project", {"project_id": "p", "project": {}})
        assert plugin.events == [("post_save_project", {"project_id": "p"})]

    def test_unknown_hook(self) -> None:
        with pytest.raises(ValueError, match="Unknown lifecycle hook"):
            PluginManager().call("pre_everything", {})

    def test_broken_class_plugin_is_dropped(self) -> None:
        class _Broken:
            def __init__(self) -> None:
                raise RuntimeError("no")

        pm = PluginManager()
        pm._pm.register(_Broken, name="broken")
        pm._instantiate_classes()
        assert pm.list_plugin_names() == []

    def test_registered_classes_are_instantiated(self) -> None:
        pm = PluginManager()
        pm._pm.register(_ClassPlugin, name="class-plugin")
        pm._instantiate_classes()
        plugins = pm._pm.get_plugins()
        assert len(plugins) == 1
        assert isinstance(next(iter(plugins)), _ClassPlugin)


class TestLifecycleEvents:
    @pytest.fixture
    def recorder(self, workspace: Workspace) -> _Recorder:
        workspace.init_plugins()
        assert workspace.plugin_manager is not None
        plugin = _Recorder()
        workspace.plugin_manager.register_plugin(plugin, name="recorder")
        return plugin

    def test_saves_emit_events(self, workspace: Workspace, recorder: _Recorder) -> None:
        project = make_project(workspace)
        make_card(workspace, project["id"])
        assert [name for name, _ in recorder.events] == ["post_save_project", "post_save_card"]

    def test_generate_emits_paths(self, workspace: Workspace, recorder: _Recorder) -> None:
        project = make_project(workspace)
        card = make_card(workspace, project["id"])
        paths = generate_images(workspace, project["id"], card["id"], count=2)
        assert recorder.events[-1] == ("post_generate", {"paths": paths, "failures": 0})

    def test_delete_emits_card_ids(self, workspace: Workspace, recorder: _Recorder) -> None:
        project = make_project(workspace)
        card = make_card(workspace, project["id"])
        ProjectService(workspace).delete_project(project["id"])
        name, payload = recorder.events[-1]
        assert name == "post_delete_project"
        assert payload == {"card_ids": [card["id"]], "files_removed": True}

    def test_plugin_failure_is_a_warning(self, workspace: Workspace) -> None:
        workspace.init_plugins()
        assert workspace.plugin_manager is not None
        workspace.plugin_manager.register_plugin(_Exploding())
        result = ProjectService(workspace).save_project({"name": "Tarot"})
        assert result.ok
        assert result.warnings == ["Plugin hook failed for post_save_project"]

    def test_no_plugins_no_dispatch(self, workspace: Workspace) -> None:
        assert workspace.plugin_manager is None
        result = CardService(workspace).save_card({"projectId": "p", "name": "x"})
        assert result.ok
        assert result.warnings == []
