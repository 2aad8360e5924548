"""Command group: stored provider API keys."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from artcards.commands._base import ArtGroup

if TYPE_CHECKING:
    from artcards.commands._context import AppContext


@click.group(
    cls=ArtGroup,
    examples="""\
  artcards keys save personal
  artcards keys list""",
)
@click.pass_obj
def keys(app: AppContext) -> None:
    """Manage named API keys."""


@keys.command(examples="  artcards keys save personal")
@click.argument("name")
@click.option("--key", prompt=True, hide_input=True, help="Key value (prompted if omitted).")
@click.pass_obj
def save(app: AppContext, name: str, key: str) -> None:
    """Store KEY under NAME, replacing any key with that name."""
    from artcards.services.keys import KeyService

    app.emit(KeyService(app.workspace).save_key(name, key))


@keys.command("list", examples="  artcards keys list\n  artcards keys list --reveal")
@click.option("--reveal", is_flag=True, help="Show full key values.")
@click.pass_obj
def list_cmd(app: AppContext, reveal: bool) -> None:
    """List stored keys (masked)."""
    from artcards.services.keys import KeyService

    app.emit(KeyService(app.workspace).list_keys(reveal=reveal))
