"""Command group: card records (list, show, save, create, update, delete, find, new-id)."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

import click

from artcards.commands._base import ArtGroup
from artcards.commands._context import load_json_object

if TYPE_CHECKING:
    from artcards.commands._context import AppContext

_CARD_EXAMPLES = """\
  artcards card list tarot_3fa9c1
  artcards card create tarot_3fa9c1 --name "The Fool" --prompt "A jester at a cliff edge"
  artcards card update tarot_3fa9c1 card_1a2b3c4d --prompt "A jester, dawn light"
  artcards card find fool"""


@click.group(cls=ArtGroup, examples=_CARD_EXAMPLES)
@click.pass_obj
def card(app: AppContext) -> None:
    """Manage cards within a project."""


@card.command("list", examples="  artcards card list tarot_3fa9c1")
@click.argument("project_id")
@click.pass_obj
def list_cmd(app: AppContext, project_id: str) -> None:
    """List a project's cards with their image counts."""
    from artcards.services.cards import CardService

    app.emit(CardService(app.workspace).list_cards(project_id))


@card.command(examples="  artcards card show tarot_3fa9c1 card_1a2b3c4d")
@click.argument("project_id")
@click.argument("card_id")
@click.pass_obj
def show(app: AppContext, project_id: str, card_id: str) -> None:
    """Show one card."""
    from artcards.services.cards import CardService

    app.emit(CardService(app.workspace).get_card(project_id, card_id))


def _card_fields(
    *,
    name: str | None,
    prompt: str | None,
    subfolder: str | None,
    aspect_ratio: str | None,
    resolution: str | None,
) -> dict[str, Any]:
    fields = {
        "name": name,
        "prompt": prompt,
        "outputSubfolder": subfolder,
        "aspectRatio": aspect_ratio,
        "resolution": resolution,
    }
    return {k: v for k, v in fields.items() if v is not None}


P = ParamSpec("P")
R = TypeVar("R")


def _field_options(func: Callable[P, R]) -> Callable[P, R]:
    """Shared per-field flags for save, create and update."""
    func = click.option("--resolution", default=None, help="Resolution override.")(func)
    func = click.option("--aspect-ratio", default=None, help="Aspect ratio override.")(func)
    func = click.option("--subfolder", default=None, help="Output subfolder name.")(func)
    func = click.option("--prompt", default=None, help="Card prompt.")(func)
    func = click.option("--name", default=None, help="Card name.")(func)
    return func


@card.command(
    examples="""\
  artcards card save '{"projectId": "tarot_3fa9c1", "name": "The Fool"}'
  artcards card save --file card.json"""
)
@click.argument("record", required=False)
@click.option(
    "--file",
    "file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Read the JSON record from a file ('-' for stdin).",
)
@click.pass_obj
def save(app: AppContext, record: str | None, file: Path | None) -> None:
    """Create or fully replace a card (upsert). ``projectId`` is required."""
    from artcards.services.cards import CardService

    data = load_json_object(record, file, what="card record")
    app.emit(CardService(app.workspace).save_card(data))


@card.command(
    examples="""\
  artcards card create tarot_3fa9c1 --name "The Fool" --prompt "A jester at a cliff edge"
  artcards card create tarot_3fa9c1 --batch cards.json"""
)
@click.argument("project_id")
@click.option(
    "--batch",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON array of {name, prompt, ...} entries ('-' for stdin).",
)
@_field_options
@click.pass_obj
def create(
    app: AppContext, project_id: str, batch: Path | None, **fields: str | None
) -> None:
    """Create new cards in a project (ids and subfolders are generated)."""
    from artcards.services.cards import CardService

    if batch is not None:
        raw = click.get_text_stream("stdin").read() if str(batch) == "-" else batch.read_text()
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise click.BadParameter(f"Invalid JSON batch: {exc.msg}") from exc
        if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
            raise click.BadParameter("The batch must be a JSON array of objects")
    else:
        item = _card_fields(**fields)
        if "name" not in item:
            raise click.UsageError("Pass --name (or --batch FILE).")
        items = [item]
    app.emit(CardService(app.workspace).create_cards(project_id, items))


@card.command(
    examples="""\
  artcards card update tarot_3fa9c1 card_1a2b3c4d --name "The Magician"
  artcards card update tarot_3fa9c1 card_1a2b3c4d --set '{"inactiveModifiers": ["m1"]}'"""
)
@click.argument("project_id")
@click.argument("card_id")
@click.option("--set", "raw", default=None, help="Changes as a JSON object.")
@_field_options
@click.pass_obj
def update(
    app: AppContext, project_id: str, card_id: str, raw: str | None, **fields: str | None
) -> None:
    """Change selected fields of a card."""
    from artcards.services.cards import CardService

    changes: dict[str, Any] = {}
    if raw is not None:
        changes = load_json_object(raw, None, what="changes")
    changes.update(_card_fields(**fields))
    if not changes:
        click.echo("No changes specified. Use --help for options.", err=True)
        raise SystemExit(1)
    app.emit(CardService(app.workspace).update_card(project_id, card_id, changes))


@card.command(examples="  artcards card delete tarot_3fa9c1 card_1a2b3c4d --yes")
@click.argument("project_id")
@click.argument("card_id")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_obj
def delete(app: AppContext, project_id: str, card_id: str, yes: bool) -> None:
    """Delete a card and its generated images."""
    from artcards.services.cards import CardService

    if not yes:
        click.confirm(f"Delete card {card_id} and its images?", abort=True, err=True)
    app.emit(CardService(app.workspace).delete_card(project_id, card_id))


@card.command(
    examples="""\
  artcards card find fool
  artcards card find fool --project tarot_3fa9c1"""
)
@click.argument("query")
@click.option("--project", "project_id", default=None, help="Limit to one project.")
@click.pass_obj
def find(app: AppContext, query: str, project_id: str | None) -> None:
    """Find cards whose name contains QUERY (case-insensitive)."""
    from artcards.services.cards import CardService

    app.emit(CardService(app.workspace).find_cards(query, project_id))


@card.command("new-id", examples="  artcards card new-id tarot_3fa9c1")
@click.argument("project_id")
@click.pass_obj
def new_id(app: AppContext, project_id: str) -> None:
    """Print a card id that is unused in the project."""
    from artcards.services.cards import CardService

    app.emit(CardService(app.workspace).new_card_id(project_id))
