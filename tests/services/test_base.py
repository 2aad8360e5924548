"""Tests for BaseService and service inheritance."""

import logging
from pathlib import Path

import pytest

from artcards.config.settings import ArtSettings
from artcards.infrastructure.paths import PathEscapeError
from artcards.infrastructure.workspace import Workspace
from artcards.services.base import BaseService
from artcards.services.cards import CardService
from artcards.services.gallery import GalleryService
from artcards.services.generation import GenerationService
from artcards.services.keys import KeyService
from artcards.services.projects import ProjectService
from artcards.services.result import ErrorCode
from tests.conftest import make_card, make_project


class TestBaseService:
    def test_workspace_stored(self, tmp_path: Path) -> None:
        ws = Workspace(ArtSettings.from_cli(data_root=tmp_path))
        assert BaseService(ws)._ws is ws

    def test_invalid_ids(self, workspace: Workspace) -> None:
        svc = BaseService(workspace)
        assert svc._invalid_ids("op", project_id="tarot", card_id=None) is None
        result = svc._invalid_ids("op", project_id="../etc")
        assert result is not None
        assert result.error is not None
        assert result.error.code == ErrorCode.INVALID_INPUT

    def test_load_maps_missing_to_not_found(self, workspace: Workspace) -> None:
        project, err = BaseService(workspace)._load_project("op", "nope")
        assert project is None
        assert err is not None
        assert err.error is not None
        assert err.error.code == ErrorCode.NOT_FOUND
        assert err.error.detail == {"project_id": "nope"}

    def test_load_maps_corruption(self, workspace: Workspace) -> None:
        path = workspace.store.path_for("projects", "broken")
        path.parent.mkdir(parents=True)
        path.write_text("{", encoding="utf-8")
        _, err = BaseService(workspace)._load_project("op", "broken")
        assert err is not None
        assert err.error is not None
        assert err.error.code == ErrorCode.CORRUPT_RECORD

    def test_load_maps_unsafe_id_to_invalid_input(self, workspace: Workspace) -> None:
        _, err = BaseService(workspace)._load_card("op", "tarot", "../x")
        assert err is not None
        assert err.error is not None
        assert err.error.code == ErrorCode.INVALID_INPUT

    def test_security_failure_logs_warning(
        self, workspace: Workspace, caplog: pytest.LogCaptureFixture
    ) -> None:
        exc = PathEscapeError(("tarot", "../../records"), "/elsewhere/records")
        with caplog.at_level(logging.WARNING, logger="artcards.services.base"):
            result = BaseService(workspace)._security_failure("generate", exc, card_id="c1")
        assert result.error is not None
        assert result.error.code == ErrorCode.SECURITY_VIOLATION
        assert result.error.detail == {"fragments": ["tarot", "../../records"], "card_id": "c1"}
        [record] = [r for r in caplog.records if r.name == "artcards.services.base"]
        assert record.levelno == logging.WARNING
        assert "generate" in record.getMessage()
        assert "../../records" in record.getMessage()

    def test_is_shared(self, tmp_path: Path) -> None:
        root = tmp_path / "output" / "tarot"
        assert BaseService._is_shared(root, {root})
        assert BaseService._is_shared(root, {root / "The_Fool"})
        assert not BaseService._is_shared(root / "The_Fool", {root})
        assert not BaseService._is_shared(root, {tmp_path / "output" / "tarot-2"})

    def test_dirs_in_use(self, workspace: Workspace) -> None:
        project = make_project(workspace, outputRoot="tarot")
        make_card(workspace, project["id"], outputSubfolder="The_Fool")
        in_use = BaseService(workspace)._dirs_in_use()
        out = workspace.paths.output_root
        assert in_use == {out / "tarot", out / "tarot" / "The_Fool"}


ALL_SERVICES = [
    ProjectService,
    CardService,
    GenerationService,
    GalleryService,
    KeyService,
]


class TestServiceInheritance:
    @pytest.mark.parametrize("service_cls", ALL_SERVICES, ids=lambda c: c.__name__)
    def test_inherits_base_service(self, service_cls: type) -> None:
        assert issubclass(service_cls, BaseService)

    @pytest.mark.parametrize("service_cls", ALL_SERVICES, ids=lambda c: c.__name__)
    def test_workspace_injection(self, service_cls: type, workspace: Workspace) -> None:
        assert service_cls(workspace)._ws is workspace
