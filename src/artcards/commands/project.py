"""Command group: project records (list, show, save, update, delete, previews, deck, bundles)."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

import click

from artcards.commands._base import ArtGroup
from artcards.commands._context import load_json_object

if TYPE_CHECKING:
    from artcards.commands._context import AppContext

_PROJECT_EXAMPLES = """\
  artcards project list
  artcards project save --name "Tarot" --output-root tarot
  artcards project update tarot_3fa9c1 --prefix "Art nouveau style"
  artcards project delete tarot_3fa9c1 --yes
  artcards project export tarot_3fa9c1 --output tarot.artproj"""


@click.group(cls=ArtGroup, examples=_PROJECT_EXAMPLES)
@click.pass_obj
def project(app: AppContext) -> None:
    """Manage projects."""


@project.command("list", examples="  artcards project list\n  artcards --json project list")
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List all projects."""
    from artcards.services.projects import ProjectService

    app.emit(ProjectService(app.workspace).list_projects())


@project.command(examples="  artcards project show tarot_3fa9c1")
@click.argument("project_id")
@click.pass_obj
def show(app: AppContext, project_id: str) -> None:
    """Show one project."""
    from artcards.services.projects import ProjectService

    app.emit(ProjectService(app.workspace).get_project(project_id))


def _project_fields(
    *,
    name: str | None,
    description: str | None,
    output_root: str | None,
    prefix: str | None,
    suffix: str | None,
    aspect_ratio: str | None,
    resolution: str | None,
) -> dict[str, Any]:
    fields = {
        "name": name,
        "description": description,
        "outputRoot": output_root,
        "globalPrefix": prefix,
        "globalSuffix": suffix,
        "defaultAspectRatio": aspect_ratio,
        "defaultResolution": resolution,
    }
    return {k: v for k, v in fields.items() if v is not None}


P = ParamSpec("P")
R = TypeVar("R")


def _field_options(func: Callable[P, R]) -> Callable[P, R]:
    """Shared per-field flags for save and update."""
    func = click.option("--resolution", default=None, help="Default resolution (e.g. 2K).")(func)
    func = click.option("--aspect-ratio", default=None, help="Default aspect ratio (e.g. 2:3).")(
        func
    )
    func = click.option("--suffix", default=None, help="Text appended to every card prompt.")(func)
    func = click.option("--prefix", default=None, help="Text prepended to every card prompt.")(func)
    func = click.option("--output-root", default=None, help="Output directory name.")(func)
    func = click.option("--description", default=None, help="Project description.")(func)
    func = click.option("--name", default=None, help="Project name.")(func)
    return func


@project.command(
    examples="""\
  artcards project save --name "Tarot"
  artcards project save '{"id": "tarot", "name": "Tarot", "outputRoot": "tarot"}'
  artcards project save --file project.json"""
)
@click.argument("record", required=False)
@click.option(
    "--file",
    "file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Read the JSON record from a file ('-' for stdin).",
)
@click.option("--id", "project_id", default=None, help="Project id (generated if omitted).")
@_field_options
@click.pass_obj
def save(
    app: AppContext,
    record: str | None,
    file: Path | None,
    project_id: str | None,
    **fields: str | None,
) -> None:
    """Create or fully replace a project (upsert)."""
    from artcards.services.projects import ProjectService

    data: dict[str, Any] = {}
    if record is not None or file is not None:
        data = load_json_object(record, file, what="project record")
    data.update(_project_fields(**fields))
    if project_id:
        data["id"] = project_id
    if not data:
        raise click.UsageError("Nothing to save: pass a JSON record or --name.")
    app.emit(ProjectService(app.workspace).save_project(data))


@project.command(
    examples="""\
  artcards project update tarot_3fa9c1 --name "Major Arcana"
  artcards project update tarot_3fa9c1 --set '{"promptModifiers": []}'"""
)
@click.argument("project_id")
@click.option("--set", "raw", default=None, help="Changes as a JSON object.")
@_field_options
@click.pass_obj
def update(app: AppContext, project_id: str, raw: str | None, **fields: str | None) -> None:
    """Change selected fields of a project."""
    from artcards.services.projects import ProjectService

    changes: dict[str, Any] = {}
    if raw is not None:
        changes = load_json_object(raw, None, what="changes")
    changes.update(_project_fields(**fields))
    if not changes:
        click.echo("No changes specified. Use --help for options.", err=True)
        raise SystemExit(1)
    app.emit(ProjectService(app.workspace).update_project(project_id, changes))


@project.command(examples="  artcards project delete tarot_3fa9c1 --yes")
@click.argument("project_id")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_obj
def delete(app: AppContext, project_id: str, yes: bool) -> None:
    """Delete a project, all of its cards, and their generated images."""
    from artcards.services.projects import ProjectService

    if not yes:
        click.confirm(
            f"Delete project {project_id} with all cards and images?", abort=True, err=True
        )
    app.emit(ProjectService(app.workspace).delete_project(project_id))


@project.command(examples="  artcards project previews tarot_3fa9c1 --limit 4")
@click.argument("project_id")
@click.option("--limit", type=int, default=None, help="Number of images (default from config).")
@click.pass_obj
def previews(app: AppContext, project_id: str, limit: int | None) -> None:
    """Show the newest images across a project's cards."""
    from artcards.services.projects import ProjectService

    app.emit(ProjectService(app.workspace).previews(project_id, limit))


@project.command(
    "export-deck",
    examples="  artcards project export-deck tarot_3fa9c1 --output deck.zip",
)
@click.argument("project_id")
@click.option(
    "--output",
    "output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Zip file to write.",
)
@click.pass_obj
def export_deck(app: AppContext, project_id: str, output: Path) -> None:
    """Zip every card's favorite images, named after the card subfolder."""
    from artcards.services.projects import ProjectService

    app.emit(ProjectService(app.workspace).export_deck(project_id, output))


@project.command(
    "export",
    examples="""\
  artcards project export tarot_3fa9c1
  artcards project export tarot_3fa9c1 --output backups/tarot.artproj""",
)
@click.argument("project_id")
@click.option(
    "--output",
    "output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Bundle file to write (default: <project_id>.artproj).",
)
@click.pass_obj
def export_cmd(app: AppContext, project_id: str, output: Path | None) -> None:
    """Bundle a project's records and images into one .artproj file."""
    from artcards.services.projects import ProjectService

    destination = output if output is not None else Path(f"{project_id}.artproj")
    app.emit(ProjectService(app.workspace).export_project(project_id, destination))


@project.command(
    "import",
    examples="""\
  artcards project import tarot.artproj
  artcards --json project import backups/tarot.artproj""",
)
@click.argument("source", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_obj
def import_cmd(app: AppContext, source: Path) -> None:
    """Merge a .artproj bundle, keeping the newer copy of every file."""
    from artcards.services.projects import ProjectService

    app.emit(ProjectService(app.workspace).import_project(source))
