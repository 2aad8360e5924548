"""Per-invocation state shared by every command through ``@click.pass_obj``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from artcards.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from artcards.config.settings import ArtSettings
    from artcards.infrastructure.workspace import Workspace
    from artcards.services.result import ServiceResult


class AppContext:
    """Settings, logging and the lazily opened workspace for one CLI run.

    Nothing under the data root is touched until a command asks for
    :attr:`workspace`.
    """

    def __init__(self, settings: ArtSettings) -> None:
        self.settings = settings
        self._workspace: Workspace | None = None

        from artcards.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        if settings.verbose:
            from artcards.services.telemetry import enable_telemetry

            enable_telemetry()

    @property
    def workspace(self) -> Workspace:
        """Open the workspace and load plugins on first use."""
        if self._workspace is None:
            from artcards.infrastructure.workspace import Workspace

            self._workspace = Workspace(self.settings)
            self._workspace.init_plugins()
        return self._workspace

    def emit(self, result: ServiceResult) -> None:
        """Print *result* and exit 1 if it failed.

        Successful output goes to stdout and failures to stderr. Outside
        JSON mode warnings are echoed to stderr too; in JSON mode they are
        already part of the payload.
        """
        output_settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        click.echo(format_result(result, settings=output_settings), err=not result.ok)
        if not output_settings.json_output:
            for warning in result.warnings:
                click.echo(f"WARNING: {warning}", err=True)
        if not result.ok:
            raise SystemExit(1)


def load_json_object(text: str | None, file: Path | None, *, what: str) -> dict[str, Any]:
    """Parse a JSON object given inline or as a file (``-`` reads stdin)."""
    if file is not None:
        raw = click.get_text_stream("stdin").read() if str(file) == "-" else file.read_text()
    elif text is not None:
        raw = text
    else:
        raise click.UsageError(f"Provide the {what} as JSON (argument or --file).")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"Invalid JSON for {what}: {exc.msg}") from exc
    if not isinstance(value, dict):
        raise click.BadParameter(f"The {what} must be a JSON object")
    return value
