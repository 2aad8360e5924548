"""Command group: a card's generated images."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import click

from artcards.commands._base import ArtGroup

if TYPE_CHECKING:
    from artcards.commands._context import AppContext

_GALLERY_EXAMPLES = """\
  artcards gallery list tarot_3fa9c1 card_1a2b3c4d
  artcards gallery meta output/tarot/The_Fool/card_1a2b3c4d_v002.png
  artcards gallery favorite tarot_3fa9c1 card_1a2b3c4d card_1a2b3c4d_v002.png
  artcards gallery archive tarot_3fa9c1 card_1a2b3c4d card_1a2b3c4d_v001.png"""


@click.group(cls=ArtGroup, examples=_GALLERY_EXAMPLES)
@click.pass_obj
def gallery(app: AppContext) -> None:
    """Browse and curate generated images."""


@gallery.command(
    "list",
    examples="""\
  artcards gallery list tarot_3fa9c1 card_1a2b3c4d
  artcards gallery list tarot_3fa9c1 card_1a2b3c4d --all""",
)
@click.argument("project_id")
@click.argument("card_id")
@click.option("--all", "include_archived", is_flag=True, help="Include archived images.")
@click.pass_obj
def list_cmd(app: AppContext, project_id: str, card_id: str, include_archived: bool) -> None:
    """List a card's images, newest first."""
    from artcards.services.gallery import GalleryService

    app.emit(
        GalleryService(app.workspace).list_images(
            project_id, card_id, include_archived=include_archived
        )
    )


@gallery.command(examples="  artcards gallery count tarot_3fa9c1 card_1a2b3c4d")
@click.argument("project_id")
@click.argument("card_id")
@click.pass_obj
def count(app: AppContext, project_id: str, card_id: str) -> None:
    """Count a card's non-archived images."""
    from artcards.services.gallery import GalleryService

    app.emit(GalleryService(app.workspace).count_images(project_id, card_id))


@gallery.command(examples="  artcards gallery meta output/tarot/The_Fool/card_1a2b3c4d_v002.png")
@click.argument("path")
@click.pass_obj
def meta(app: AppContext, path: str) -> None:
    """Show the provenance embedded in an image (PATH relative to the data root)."""
    from artcards.services.gallery import GalleryService

    app.emit(GalleryService(app.workspace).read_metadata(path))


@gallery.command(
    examples="  artcards gallery favorite tarot_3fa9c1 card_1a2b3c4d card_1a2b3c4d_v002.png"
)
@click.argument("project_id")
@click.argument("card_id")
@click.argument("filename")
@click.pass_obj
def favorite(app: AppContext, project_id: str, card_id: str, filename: str) -> None:
    """Toggle an image's favorite mark."""
    from artcards.services.gallery import GalleryService

    app.emit(GalleryService(app.workspace).toggle_favorite(project_id, card_id, filename))


@gallery.command(
    examples="""\
  artcards gallery archive tarot_3fa9c1 card_1a2b3c4d card_1a2b3c4d_v001.png
  artcards gallery archive tarot_3fa9c1 card_1a2b3c4d card_1a2b3c4d_v001.png --restore"""
)
@click.argument("project_id")
@click.argument("card_id")
@click.argument("filename")
@click.option("--restore", is_flag=True, help="Un-archive instead.")
@click.pass_obj
def archive(app: AppContext, project_id: str, card_id: str, filename: str, restore: bool) -> None:
    """Hide an image from default listings (the file is kept)."""
    from artcards.services.gallery import GalleryService

    app.emit(
        GalleryService(app.workspace).archive(
            project_id, card_id, filename, archived=not restore
        )
    )


@gallery.command(
    examples="""\
  artcards gallery export tarot_3fa9c1 card_1a2b3c4d a_v001.png a_v002.png --output fool.zip"""
)
@click.argument("project_id")
@click.argument("card_id")
@click.argument("filenames", nargs=-1, required=True)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    required=True,
    help="Zip file to write.",
)
@click.pass_obj
def export(
    app: AppContext, project_id: str, card_id: str, filenames: tuple[str, ...], output: Path
) -> None:
    """Zip selected images of a card."""
    from artcards.services.gallery import GalleryService

    app.emit(
        GalleryService(app.workspace).export_images(project_id, card_id, list(filenames), output)
    )
