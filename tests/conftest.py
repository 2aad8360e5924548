"""Shared pytest fixtures and test helpers for artcards tests."""

from __future__ import annotations

import io
import json
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from PIL import Image

from artcards.config.settings import ArtSettings
from artcards.infrastructure.provider import GeneratedImage, GenerationRequest, ProviderError
from artcards.infrastructure.workspace import Workspace

TEST_API_KEY = "test-key-0123456789"


def png_bytes(color: str = "red", size: tuple[int, int] = (8, 8)) -> bytes:
    """A tiny valid PNG."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def jpeg_bytes(color: str = "blue", size: tuple[int, int] = (8, 8)) -> bytes:
    """A tiny valid JPEG."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeProvider:
    """Scripted image provider.

    *outcomes* is consumed one entry per call: ``"ok"`` returns a PNG,
    ``"jpeg"`` a JPEG, anything else raises :class:`ProviderError` with
    that text, except ``"crash"`` which raises a bare ``KeyError`` the way
    an unexpected bug would. Calls past the end of the script succeed.
    """

    def __init__(self, outcomes: Iterable[str] = ()) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[GenerationRequest] = []
        self._lock = threading.Lock()

    def generate(self, request: GenerationRequest) -> GeneratedImage:
        with self._lock:
            index = len(self.requests)
            self.requests.append(request)
        outcome = self.outcomes[index] if index < len(self.outcomes) else "ok"
        if outcome == "ok":
            return GeneratedImage(data=png_bytes(), mime_type="image/png", model="fake-model")
        if outcome == "jpeg":
            return GeneratedImage(data=jpeg_bytes(), mime_type="image/jpeg", model="fake-model")
        if outcome == "crash":
            raise KeyError("inlineData")
        raise ProviderError(outcome)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of settings resolution."""
    for name in ("ARTCARDS_CONFIG", "ARTCARDS_API_KEY", "ARTCARDS_PROVIDER__API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Temporary data directory. Records and output areas are created on demand."""
    return tmp_path


@pytest.fixture
def settings(data_root: Path) -> ArtSettings:
    """Settings rooted at the temp data directory, with a configured API key."""
    return ArtSettings.from_cli(data_root=data_root, provider={"api_key": TEST_API_KEY})


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def workspace(settings: ArtSettings, fake_provider: FakeProvider) -> Workspace:
    """Workspace on the temp data directory with a scripted provider."""
    return Workspace(settings, provider=fake_provider)


@pytest.fixture
def _isolated_root(data_root: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to the temp data root so the CLI works in isolation.

    Use via ``@pytest.mark.usefixtures("_isolated_root")`` on command test
    classes. Tests that need the path can request ``tmp_path`` directly
    (pytest deduplicates, it is the same directory).
    """
    monkeypatch.chdir(data_root)


# ---------------------------------------------------------------------------
# Shared test helpers (used across service and command test modules)
# ---------------------------------------------------------------------------


def make_project(ws: Workspace, name: str = "Tarot", **fields: Any) -> dict[str, Any]:
    """Save a project via ProjectService, asserting success. Returns the record."""
    from artcards.services.projects import ProjectService

    result = ProjectService(ws).save_project({"name": name, **fields})
    assert result.ok, result.error
    return result.data["project"]


def make_card(
    ws: Workspace, project_id: str, name: str = "The Fool", **fields: Any
) -> dict[str, Any]:
    """Save a card via CardService, asserting success. Returns the record.

    Cards get a generic prompt unless *fields* names one, so they can be
    generated from straight away.
    """
    from artcards.services.cards import CardService

    record = {"projectId": project_id, "name": name, "prompt": "A card", **fields}
    result = CardService(ws).save_card(record)
    assert result.ok, result.error
    return result.data["card"]


def generate_images(ws: Workspace, project_id: str, card_id: str, count: int = 1) -> list[str]:
    """Generate *count* images via GenerationService, asserting success. Returns paths."""
    from artcards.services.generation import GenerationService

    result = GenerationService(ws).generate(project_id, card_id, count=count)
    assert result.ok, result.error
    return result.data["paths"]


def cli_json(output: str) -> dict[str, Any]:
    """Parse the ``--json`` payload from CLI output.

    Failures go to stderr, which CliRunner mixes into ``output`` together
    with any warning-level log lines emitted before the payload.
    """
    return json.loads(output[output.index("{\n") :])
