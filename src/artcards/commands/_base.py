"""Click command classes that carry worked examples.

``--help`` stays short; ``--examples`` prints a few complete invocations
(project JSON, batch files, key names) and exits.
"""

from __future__ import annotations

from typing import Any

import click


class _ExamplesMixin:
    examples: str | None

    def _install_examples(self, examples: str | None) -> None:
        self.examples = examples
        if not examples:
            return

        def _print(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
            if value and not ctx.resilient_parsing:
                click.echo(f"Examples for '{ctx.command_path}':\n\n{examples}")
                ctx.exit(0)

        self.params.append(  # type: ignore[attr-defined]
            click.Option(
                ["--examples"],
                is_flag=True,
                is_eager=True,
                expose_value=False,
                callback=_print,
                help="Show usage examples and exit.",
            )
        )


class ArtCommand(_ExamplesMixin, click.Command):
    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._install_examples(examples)


class ArtGroup(_ExamplesMixin, click.Group):
    """Group whose subcommands default to :class:`ArtCommand`."""

    command_class = ArtCommand

    def __init__(self, *args: Any, examples: str | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._install_examples(examples)
