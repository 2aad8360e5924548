"""Command: generate images for a card."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from artcards.commands._base import ArtCommand

if TYPE_CHECKING:
    from artcards.commands._context import AppContext


@click.command(
    cls=ArtCommand,
    examples="""\
  artcards generate tarot_3fa9c1 card_1a2b3c4d
  artcards generate tarot_3fa9c1 card_1a2b3c4d --count 3 --key-name personal
  artcards generate tarot_3fa9c1 card_1a2b3c4d --aspect-ratio 1:1 --resolution 1K
  artcards generate tarot_3fa9c1 card_1a2b3c4d --prompt "A fox in the snow" """,
)
@click.argument("project_id")
@click.argument("card_id")
@click.option("-n", "--count", type=int, default=1, show_default=True, help="Images to generate.")
@click.option("--prompt", default=None, help="Use this prompt instead of the assembled one.")
@click.option("--aspect-ratio", default=None, help="Override the aspect ratio.")
@click.option("--resolution", default=None, help="Override the resolution.")
@click.option("--key-name", default=None, help="Use a stored API key by name.")
@click.option(
    "--api-key",
    default=None,
    envvar="ARTCARDS_API_KEY",
    help="API key for this request only.",
)
@click.pass_obj
def generate(
    app: AppContext,
    project_id: str,
    card_id: str,
    count: int,
    prompt: str | None,
    aspect_ratio: str | None,
    resolution: str | None,
    key_name: str | None,
    api_key: str | None,
) -> None:
    """Generate COUNT images for a card and save them to its output folder."""
    from artcards.services.generation import GenerationService

    app.emit(
        GenerationService(app.workspace).generate(
            project_id,
            card_id,
            count=count,
            prompt_override=prompt,
            aspect_ratio=aspect_ratio,
            resolution=resolution,
            api_key=api_key,
            key_name=key_name,
        )
    )
