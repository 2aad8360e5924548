"""Shared service-layer helper functions."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ValidationError

from artcards.services.result import ServiceError, ServiceResult


def now_iso() -> str:
    """Current UTC time as standard ISO 8601 (embedded in image provenance)."""
    return datetime.now(UTC).isoformat()


def failure(
    op: str,
    code: str,
    message: str,
    *,
    data: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
    **detail: Any,
) -> ServiceResult:
    """Build a failed ServiceResult. *detail* names the entities involved."""
    return ServiceResult(
        ok=False,
        op=op,
        data=data or {},
        warnings=warnings or [],
        error=ServiceError(
            code=code,
            message=message,
            detail={k: v for k, v in detail.items() if v is not None},
        ),
    )


def validation_message(exc: ValidationError) -> str:
    """One-line summary of a pydantic ValidationError."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def unknown_fields(model: type[BaseModel], changes: Mapping[str, Any]) -> list[str]:
    """Keys of *changes* that name no field of *model* (by name or alias)."""
    known: set[str] = set()
    for name, info in model.model_fields.items():
        known.add(name)
        if info.alias:
            known.add(info.alias)
    return sorted(k for k in changes if k not in known)
