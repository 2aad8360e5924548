"""Pluggy hook specifications for artcards lifecycle events.

Hooks run synchronously after the record (and, where relevant, file)
phase of an operation has finished. They observe; they cannot veto.
"""

from __future__ import annotations

from typing import Any

import pluggy

PROJECT_NAME = "artcards"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class ArtcardsHookSpec:
    """Hook specifications for the artcards plugin system."""

    @hookspec
    def post_save_project(self, project_id: str, project: dict[str, Any]) -> None:
        """Called after a project record is created or replaced."""

    @hookspec
    def post_delete_project(
        self,
        project_id: str,
        card_ids: list[str],
        files_removed: bool,
    ) -> None:
        """Called after a project cascade (records, then output files)."""

    @hookspec
    def post_save_card(self, project_id: str, card_id: str, card: dict[str, Any]) -> None:
        """Called after a card record is created or replaced."""

    @hookspec
    def post_delete_card(self, project_id: str, card_id: str, files_removed: bool) -> None:
        """Called after a card cascade."""

    @hookspec
    def post_generate(
        self,
        project_id: str,
        card_id: str,
        paths: list[str],
        failures: int,
    ) -> None:
        """Called after a generation request, with every path that was saved."""
