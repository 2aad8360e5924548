"""Prompt assembly and size resolution for a (project, card) pair."""

from __future__ import annotations

from artcards.domain.models import Card, ModifierType, Project

PART_SEPARATOR = "\n\n"


def assemble_prompt(project: Project, card: Card) -> str:
    """Build the full generation prompt.

    Order: active prefix modifiers, project global prefix, card prompt,
    project global suffix, active suffix modifiers. Blank parts are
    skipped; parts are joined by a blank line.
    """
    inactive = set(card.inactive_modifiers)
    active = [m for m in project.prompt_modifiers if m.id not in inactive]

    parts: list[str] = [m.text for m in active if m.type is ModifierType.PREFIX]
    parts.extend([project.global_prefix, card.prompt, project.global_suffix])
    parts.extend(m.text for m in active if m.type is ModifierType.SUFFIX)

    return PART_SEPARATOR.join(p.strip() for p in parts if p and p.strip())


def resolve_size(
    project: Project,
    card: Card,
    *,
    aspect_ratio: str | None = None,
    resolution: str | None = None,
    default_aspect_ratio: str,
    default_resolution: str,
) -> tuple[str, str]:
    """Pick ``(aspect_ratio, resolution)``: override → card → project → configured default."""
    ar = aspect_ratio or card.aspect_ratio or project.default_aspect_ratio or default_aspect_ratio
    res = resolution or card.resolution or project.default_resolution or default_resolution
    return ar, res
