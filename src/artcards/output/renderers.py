"""Human-readable rendering of service results.

One renderer per operation, looked up by ``result.op``; anything without a
dedicated renderer prints its data as plain ``key: value`` lines. Project
and card records render as panels, listings as tables, and generation or
cascade outcomes as one line per file touched, partial failures included.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from artcards.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from artcards.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render *result* for a terminal. Plain text when stdout is not a tty."""
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode: ids or paths, one per line."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    if "paths" in result.data:
        return "\n".join(result.data["paths"])
    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(_extract_id(item) for item in items if _extract_id(item))
    quiet_ops = ("new_card_id", "export_deck", "export_images", "export_project", "import_project")
    for key in ("card_id", "archive", "project_id"):
        if key in result.data and result.op in quiet_ops:
            return str(result.data[key])
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _extract_id(item: Any) -> str:
    """Extract an identifier from a dict item (records, images, keys)."""
    if isinstance(item, dict):
        for key in ("id", "path", "name"):
            val = item.get(key)
            if val:
                return str(val)
    return ""


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="art.ok")
    op = Text(f"  {result.op}", style="art.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    k = Text(f"  {key}: ", style="art.key")
    if key == "id" or key.endswith("_id") or key.endswith("Id"):
        v = Text(str(value), style="art.id")
    elif key in ("path", "archive") or key.endswith("Root") or key.endswith("Subfolder"):
        v = Text(str(value), style="art.path")
    elif key in ("name", "title"):
        v = Text(str(value), style="art.title")
    elif isinstance(value, (dict, list)):
        v = Text(json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print result.meta under the status block, the span tree indented by depth."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(Text(f"    {k}: {v}"))


def _timing_style(duration_ms: float) -> str:
    # Image calls routinely take seconds; only flag the truly slow ones.
    if duration_ms >= 30_000:
        return "bold red"
    if duration_ms >= 5_000:
        return "yellow"
    return "dim"


def _render_telemetry_tree(console: Console, node: dict[str, Any], indent: int = 4) -> None:
    duration = float(node.get("duration_ms", 0.0))
    line = Text(" " * indent)
    line.append(f"{duration:>9.2f}ms", style=_timing_style(duration))
    line.append(f"  {node.get('name', '?')}")
    notes = node.get("annotations") or {}
    if notes:
        line.append("  (" + ", ".join(f"{k}={v}" for k, v in notes.items()) + ")", style="dim")
    console.print(line)
    for child in node.get("children", []):
        _render_telemetry_tree(console, child, indent + 4)


def _flag(value: Any, mark: str, style: str) -> Text:
    return Text(mark, style=style) if value else Text("")


def _table() -> Table:
    return Table(show_header=True, show_lines=False, pad_edge=False, expand=False)


def _panel(console: Console, title: str, lines: list[str]) -> None:
    body = Text("\n".join(lines))
    console.print(Panel(body, title=escape(title), border_style="dim", expand=False))


# ── Project renderers ─────────────────────────────────────────────────


def _render_project_table(
    result: ServiceResult, console: Console, *, verbose: bool = False
) -> None:
    items = result.data.get("items", [])
    table = _table()
    table.add_column("ID", style="art.id", no_wrap=True)
    table.add_column("Name", style="art.title")
    table.add_column("Output root", style="art.path")
    if verbose:
        table.add_column("Description", style="dim")
    for item in items:
        row = [
            str(item.get("id", "")),
            str(item.get("name", "")),
            str(item.get("outputRoot", "")),
        ]
        if verbose:
            row.append(str(item.get("description", "")))
        table.add_row(*row)
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} projects")


def _render_project(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    p = result.data.get("project", {})
    lines = [
        f"output root: {p.get('outputRoot', '')}",
        f"cards: {result.data.get('card_count', 0)}",
    ]
    for key, label in (
        ("defaultAspectRatio", "aspect ratio"),
        ("defaultResolution", "resolution"),
    ):
        if p.get(key):
            lines.append(f"{label}: {p[key]}")
    if p.get("description"):
        lines.append(f"\n{p['description']}")
    if p.get("globalPrefix"):
        lines.append(f"\nprefix: {p['globalPrefix']}")
    if p.get("globalSuffix"):
        lines.append(f"suffix: {p['globalSuffix']}")
    for mod in p.get("promptModifiers", []):
        lines.append(f"modifier [{mod.get('type')}] {mod.get('id')}: {mod.get('text', '')}")
    title = f"{p.get('id', '?')} — {p.get('name') or 'Untitled'}"
    _panel(console, title, lines)


def _render_previews(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = _table()
    table.add_column("Card", style="art.id", no_wrap=True)
    table.add_column("Image")
    table.add_column("Path", style="art.path")
    for item in items:
        table.add_row(item["card_id"], item["filename"], item["path"])
    console.print(table)


# ── Card renderers ────────────────────────────────────────────────────


def _render_card_table(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    show_project = result.op == "find_cards"
    table = _table()
    table.add_column("ID", style="art.id", no_wrap=True)
    if show_project:
        table.add_column("Project", style="art.id")
    table.add_column("Name", style="art.title")
    table.add_column("Subfolder", style="art.path")
    if not show_project:
        table.add_column("Images", justify="right")
    if verbose:
        table.add_column("Prompt", style="art.prompt")
    for item in items:
        row = [str(item.get("id", ""))]
        if show_project:
            row.append(str(item.get("projectId", "")))
        row.extend([str(item.get("name", "")), str(item.get("outputSubfolder", ""))])
        if not show_project:
            count = item.get("imageCount")
            row.append("?" if count is None else str(count))
        if verbose:
            row.append(str(item.get("prompt", ""))[:60])
        table.add_row(*row)
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} cards")


def _render_card(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    c = result.data.get("card", {})
    lines = [f"project: {c.get('projectId', '')}", f"subfolder: {c.get('outputSubfolder', '')}"]
    for key, label in (("aspectRatio", "aspect ratio"), ("resolution", "resolution")):
        if c.get(key):
            lines.append(f"{label}: {c[key]}")
    if c.get("favoriteImages"):
        lines.append(f"favorites: {', '.join(c['favoriteImages'])}")
    if c.get("archivedImages"):
        lines.append(f"archived: {', '.join(c['archivedImages'])}")
    if c.get("prompt"):
        lines.append(f"\n{c['prompt'].strip()}")
    title = f"{c.get('id', '?')} — {c.get('name') or 'Untitled'}"
    _panel(console, title, lines)


def _render_batch(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render create_cards results."""
    _status_line(console, result)
    created = result.data.get("items", [])
    failures = result.data.get("failures", [])
    _field(console, "created", len(created))
    _field(console, "failures", len(failures))
    for card in created:
        console.print(f"  [art.id]{card['id']}[/art.id]  {escape(card.get('name', ''))}")
    _render_failures(console, failures)


def _render_failures(console: Console, failures: list[dict[str, Any]]) -> None:
    for f in failures:
        code = f.get("code", "")
        tag = f" {code}" if code else ""
        message = escape(str(f.get("message")))
        console.print(f"  [art.error]failed[/art.error] #{f.get('index')}{tag}: {message}")


# ── Mutation renderers ────────────────────────────────────────────────


def _render_mutation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render save/update/favorite/archive results."""
    _status_line(console, result)
    record = result.data.get("project") or result.data.get("card") or {}
    for key in ("id", "projectId", "name", "outputRoot", "outputSubfolder"):
        if key in record:
            _field(console, key, record[key])
    for key in ("name", "filename", "isFavorite", "isArchived", "created", "fields_changed", "key"):
        if key in result.data and key not in record:
            _field(console, key, result.data[key])
    if verbose:
        _render_meta(console, result)


def _render_delete(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _render_cascade(console, result.data)
    if verbose:
        _render_meta(console, result)


def _render_cascade(console: Console, data: dict[str, Any]) -> None:
    for key in ("project_id", "card_id"):
        if key in data:
            _field(console, key, data[key])
    if "cards_removed" in data:
        _field(console, "cards_removed", len(data["cards_removed"]))
    for rel in data.get("dirs_removed", []):
        console.print(f"  [art.key]removed:[/art.key] [art.path]{escape(rel)}[/art.path]")
    for rel in data.get("dirs_kept", []):
        console.print(f"  [art.warning]kept:[/art.warning] [art.path]{escape(rel)}[/art.path]")


# ── Generation and gallery renderers ──────────────────────────────────


def _render_generate(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _render_generated(console, result.data, verbose=verbose)
    if verbose:
        _render_meta(console, result)


def _render_generated(console: Console, data: dict[str, Any], *, verbose: bool = False) -> None:
    for key in ("aspect_ratio", "resolution"):
        if key in data:
            _field(console, key, data[key])
    if verbose and data.get("prompt"):
        console.print(Text(f"  {data['prompt']}", style="art.prompt"))
    for image in data.get("images", []):
        line = f"  [art.ok]saved[/art.ok] [art.path]{escape(image['path'])}[/art.path]"
        if image.get("metadata_error"):
            line += "  [art.warning](no provenance)[/art.warning]"
        console.print(line)
    _render_failures(console, data.get("failures", []))


def _render_image_table(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = _table()
    table.add_column("Filename", no_wrap=True)
    table.add_column("Fav", justify="center")
    table.add_column("Arch", justify="center")
    table.add_column("Modified", style="dim")
    if verbose:
        table.add_column("Path", style="art.path")
    for item in items:
        row: list[Any] = [
            item["filename"],
            _flag(item.get("isFavorite"), "★", "art.favorite"),
            _flag(item.get("isArchived"), "✓", "art.archived"),
            item.get("mtime", ""),
        ]
        if verbose:
            row.append(item.get("path", ""))
        table.add_row(*row)
    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} images")


def _render_metadata(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    d = result.data
    lines = [f"created: {d.get('created', '')}"]
    for key in ("creator", "comment", "model"):
        if d.get(key):
            lines.append(f"{key}: {d[key]}")
    if verbose and d.get("generation"):
        lines.append(f"generation: {json.dumps(d['generation'], sort_keys=True)}")
    lines.append(f"\n{d.get('prompt', '')}")
    title = d.get("title") or d.get("filename", "?")
    _panel(console, title, lines)


def _render_export(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "archive", result.data.get("archive", ""))
    for key in ("count", "cards", "images"):
        if key in result.data:
            _field(console, key, result.data[key])
    if verbose:
        for name in result.data.get("entries", []):
            console.print(Text(f"    {name}"))


def _render_import(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Bundle import: what was written and what newer local copies were kept."""
    _status_line(console, result)
    _field(console, "project_id", result.data.get("project_id", ""))
    if result.data.get("name"):
        _field(console, "name", result.data["name"])
    written = result.data.get("written", [])
    kept = result.data.get("kept", [])
    _field(console, "written", len(written))
    _field(console, "kept", len(kept))
    if verbose:
        for name in written:
            console.print(Text(f"    + {name}", style="art.ok"))
        for name in kept:
            console.print(Text(f"    = {name}", style="dim"))
        _render_meta(console, result)


def _render_key_table(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = _table()
    table.add_column("Name", style="art.title")
    table.add_column("Key", style="dim")
    for item in items:
        table.add_row(item["name"], item["key"])
    console.print(table)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="art.error")
    op = Text(f"  {result.op}", style="art.op")
    sep = Text(" — ")
    console.print(label, op, sep, msg)

    # Partial outcomes still carry what did succeed.
    if result.op == "generate" and result.data:
        _render_generated(console, result.data, verbose=verbose)
    elif result.op in ("delete_project", "delete_card") and result.data:
        _render_cascade(console, result.data)
    elif result.op == "create_cards" and result.data:
        _render_failures(console, result.data.get("failures", []))

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(Text(f"    {k}: {v}"))


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Status line plus every data key."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Projects
    "list_projects": _render_project_table,
    "get_project": _render_project,
    "save_project": _render_mutation,
    "update_project": _render_mutation,
    "delete_project": _render_delete,
    "project_previews": _render_previews,
    "export_deck": _render_export,
    "export_project": _render_export,
    "import_project": _render_import,
    # Cards
    "list_cards": _render_card_table,
    "find_cards": _render_card_table,
    "get_card": _render_card,
    "save_card": _render_mutation,
    "update_card": _render_mutation,
    "create_cards": _render_batch,
    "delete_card": _render_delete,
    # Generation
    "generate": _render_generate,
    # Gallery
    "list_images": _render_image_table,
    "read_metadata": _render_metadata,
    "toggle_favorite": _render_mutation,
    "archive": _render_mutation,
    "export_images": _render_export,
    # Keys
    "save_key": _render_mutation,
    "list_keys": _render_key_table,
}
