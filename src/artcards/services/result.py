"""Return types shared by every service.

A missing card, a refused path or a failed provider call comes back as a
failed :class:`ServiceResult`, never as an exception, so the CLI (and any
other front end) needs exactly one code path per operation. Partial
outcomes such as a generation run where some images failed carry both the
error and the data for what did succeed.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from artcards.domain.actions import ClientAction


class ErrorCode:
    """Machine-readable failure codes; part of the JSON output contract."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_INPUT = "INVALID_INPUT"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    CORRUPT_RECORD = "CORRUPT_RECORD"
    IO_FAILED = "IO_FAILED"
    PROVIDER_FAILED = "PROVIDER_FAILED"
    METADATA_FAILED = "METADATA_FAILED"
    GENERATION_PARTIAL = "GENERATION_PARTIAL"
    PARTIAL_CASCADE = "PARTIAL_CASCADE"
    NO_API_KEY = "NO_API_KEY"
    BATCH_PARTIAL = "BATCH_PARTIAL"


class ServiceError(BaseModel):
    """Why a call failed.

    ``detail`` names the entity involved (``project_id``, ``card_id``,
    ``filename``) so callers can tell which one failed.
    """

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Outcome of one service call.

    Attributes:
        ok: False whenever ``error`` is set, partial outcomes included.
        op: Operation name, e.g. ``"delete_project"``; selects the renderer.
        data: Operation payload; kept on partial failure.
        warnings: Problems that did not stop the operation (plugin hooks,
            images saved without provenance, cards without a project).
        error: What went wrong, if anything.
        meta: Extras such as the ``--verbose`` span tree.
        action: Follow-up a front end should perform (refresh a gallery,
            drop a deleted card from view).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None
    action: ClientAction | None = None
