"""GenerationService: prompt → provider → versioned image files.

Pipeline: VALIDATE → RESOLVE → GENERATE (per image) → RESPOND

- VALIDATE: ids, count bounds, project and card exist.
- RESOLVE: secure output directory (before any I/O), API key, prompt, size.
- GENERATE: one provider call and one save per requested image. Each image
  succeeds or fails on its own; a failure never aborts its siblings.
- RESPOND: relative paths of every saved image plus per-image failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from artcards.config.logging import bound_request
from artcards.domain.actions import ImagesGenerated
from artcards.domain.prompts import assemble_prompt, resolve_size
from artcards.infrastructure.media import MediaWriteError, Provenance, save_image
from artcards.infrastructure.paths import PathEscapeError
from artcards.infrastructure.provider import GenerationRequest, ProviderError
from artcards.services._helpers import failure, now_iso
from artcards.services.base import BaseService
from artcards.services.keys import KeyService
from artcards.services.result import ErrorCode, ServiceResult
from artcards.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from pathlib import Path

    from artcards.domain.models import Card, Project
    from artcards.infrastructure.provider import ImageProvider

log = structlog.get_logger(__name__)


class GenerationService(BaseService):
    """Generates images for a card and saves them into its output directory."""

    @traced
    def generate(
        self,
        project_id: str,
        card_id: str,
        *,
        count: int = 1,
        prompt_override: str | None = None,
        aspect_ratio: str | None = None,
        resolution: str | None = None,
        api_key: str | None = None,
        key_name: str | None = None,
    ) -> ServiceResult:
        op = "generate"
        ids = {"project_id": project_id, "card_id": card_id}
        gen_cfg = self._ws.settings.generation

        # ── VALIDATE ─────────────────────────────────────────
        err = self._invalid_ids(op, **ids)
        if err is not None:
            return err
        if not 1 <= count <= gen_cfg.max_count:
            return failure(
                op,
                ErrorCode.INVALID_INPUT,
                f"count must be between 1 and {gen_cfg.max_count}, got {count}",
                **ids,
            )
        project, err = self._load_project(op, project_id)
        if err is not None:
            return err
        card, err = self._load_card(op, project_id, card_id)
        if err is not None:
            return err

        # ── RESOLVE ──────────────────────────────────────────
        try:
            directory = self._ws.paths.card_dir(project, card)
        except PathEscapeError as exc:
            return self._security_failure(op, exc, **ids)

        resolved, err = KeyService(self._ws).resolve_key(api_key=api_key, key_name=key_name)
        if err is not None:
            return failure(op, err.error.code, err.error.message, **ids, **err.error.detail)

        prompt = prompt_override.strip() if prompt_override else assemble_prompt(project, card)
        if not prompt:
            return failure(op, ErrorCode.INVALID_INPUT, "Prompt is empty", **ids)
        ar, res = resolve_size(
            project,
            card,
            aspect_ratio=aspect_ratio,
            resolution=resolution,
            default_aspect_ratio=gen_cfg.default_aspect_ratio,
            default_resolution=gen_cfg.default_resolution,
        )

        try:
            provider = self._ws.provider
        except ValueError as exc:
            return failure(op, ErrorCode.PROVIDER_FAILED, str(exc), **ids)

        # ── GENERATE ─────────────────────────────────────────
        request = GenerationRequest(
            prompt=prompt, aspect_ratio=ar, resolution=res, api_key=resolved.key
        )
        images: list[dict[str, Any]] = []
        failures: list[dict[str, Any]] = []
        warnings: list[str] = []

        with bound_request(op, **ids):
            log.info("generation_started", count=count, key_source=resolved.source)
            for index in range(1, count + 1):
                with trace_span("generate_image", index=index) as span:
                    outcome = self._generate_one(
                        provider, request, directory, project, card, index
                    )
                    if span is not None:
                        span.annotate("ok", "path" in outcome)
                if "path" in outcome:
                    images.append(outcome)
                    if outcome.get("metadata_error"):
                        warnings.append(
                            f"Image {outcome['filename']} saved without provenance: "
                            f"{outcome['metadata_error']}"
                        )
                else:
                    failures.append(outcome)
            log.info("generation_finished", saved=len(images), failed=len(failures))

        # ── RESPOND ──────────────────────────────────────────
        paths = [img["path"] for img in images]
        self._dispatch_event(
            "post_generate",
            {**ids, "paths": paths, "failures": len(failures)},
            warnings,
        )
        data: dict[str, Any] = {
            **ids,
            "prompt": prompt,
            "aspect_ratio": ar,
            "resolution": res,
            "images": images,
            "paths": paths,
            "failures": failures,
        }
        action = ImagesGenerated(project_id=project_id, card_id=card_id, paths=tuple(paths))

        if not failures:
            return ServiceResult(ok=True, op=op, data=data, warnings=warnings, action=action)
        if images:
            return failure(
                op,
                ErrorCode.GENERATION_PARTIAL,
                f"Generated {len(images)} of {count} image(s)",
                data=data,
                warnings=warnings,
                **ids,
            ).model_copy(update={"action": action})
        codes = {f["code"] for f in failures}
        code = codes.pop() if len(codes) == 1 else ErrorCode.PROVIDER_FAILED
        return failure(op, code, failures[0]["message"], data=data, warnings=warnings, **ids)

    def _generate_one(
        self,
        provider: ImageProvider,
        request: GenerationRequest,
        directory: Path,
        project: Project,
        card: Card,
        index: int,
    ) -> dict[str, Any]:
        """One provider call plus one save. Never raises for expected failures."""
        try:
            generated = provider.generate(request)
        except ProviderError as exc:
            log.warning("provider_failed", index=index, error=str(exc))
            return {"index": index, "code": ErrorCode.PROVIDER_FAILED, "message": str(exc)}
        except Exception as exc:
            # Any other provider failure stays scoped to this image.
            log.exception("provider_crashed", index=index)
            message = f"Provider call failed unexpectedly: {type(exc).__name__}: {exc}"
            return {"index": index, "code": ErrorCode.PROVIDER_FAILED, "message": message}

        provenance = Provenance(
            prompt=request.prompt,
            title=card.name or card.id,
            project=project.name or project.id,
            card_id=card.id,
            created=now_iso(),
            generation={
                "aspect_ratio": request.aspect_ratio,
                "resolution": request.resolution,
                "model": generated.model,
            },
        )
        try:
            saved = save_image(
                directory,
                generated.data,
                generated.mime_type,
                base_name=card.id,
                provenance=provenance,
                version_width=self._ws.settings.generation.filename_version_width,
            )
        except MediaWriteError as exc:
            log.error("image_write_failed", index=index, error=str(exc))
            return {"index": index, "code": ErrorCode.IO_FAILED, "message": str(exc)}

        return {
            "index": index,
            "filename": saved.filename,
            "path": self._ws.paths.to_relative(saved.path),
            "metadata_error": saved.metadata_error,
        }
