"""Image provider: the opaque generative backend.

Contract: prompt + aspect ratio + resolution (+ credentials) in, image
bytes + mime type out. Each call is all-or-nothing: a failed or cancelled
request raises :class:`ProviderError` and produces no file.

The API key travels inside each :class:`GenerationRequest`. Nothing here
holds a process-wide key, so concurrent requests with different keys
cannot leak into one another.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from artcards.config.models import ProviderConfig

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """The image backend failed, refused, or returned no image."""


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    aspect_ratio: str
    resolution: str
    api_key: str

    def __repr__(self) -> str:
        return (
            f"GenerationRequest(prompt={self.prompt[:40]!r}, aspect_ratio={self.aspect_ratio!r}, "
            f"resolution={self.resolution!r}, api_key='***')"
        )


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str
    model: str = ""


class ImageProvider(Protocol):
    """Anything that turns a :class:`GenerationRequest` into image bytes."""

    def generate(self, request: GenerationRequest) -> GeneratedImage: ...


class GeminiImageProvider:
    """Google Generative Language REST backend (``generateContent``)."""

    def __init__(
        self,
        *,
        model: str,
        base_url: str,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.model = model
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._timeout = timeout
        self._transport = transport

    def _payload(self, request: GenerationRequest) -> dict[str, Any]:
        return {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": f"Aspect Ratio: {request.aspect_ratio}\n\n{request.prompt}"}],
                }
            ],
            "generationConfig": {
                "responseModalities": ["IMAGE", "TEXT"],
                "imageConfig": {
                    "aspectRatio": request.aspect_ratio,
                    "imageSize": request.resolution,
                },
            },
        }

    def generate(self, request: GenerationRequest) -> GeneratedImage:
        headers = {"x-goog-api-key": request.api_key, "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                logger.debug("Requesting image from %s", self.model)
                response = client.post(self._url, headers=headers, json=self._payload(request))
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Provider returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            raise ProviderError(msg) from exc
        except httpx.RequestError as exc:
            msg = f"Provider request failed: {exc}"
            raise ProviderError(msg) from exc
        except ValueError as exc:
            msg = "Provider returned a non-JSON response"
            raise ProviderError(msg) from exc
        try:
            return self._extract(body)
        except (AttributeError, TypeError) as exc:
            # Valid JSON of the wrong shape, such as a list where an object belongs.
            msg = "Provider returned an unexpected response"
            raise ProviderError(msg) from exc

    def _extract(self, body: dict[str, Any]) -> GeneratedImage:
        block = (body.get("promptFeedback") or {}).get("blockReason")
        if block:
            msg = f"Safety: {block} (Prompt Blocked)"
            raise ProviderError(msg)

        for candidate in body.get("candidates") or []:
            finish = candidate.get("finishReason")
            if finish == "SAFETY":
                msg = "Safety: Image generation blocked by filters."
                raise ProviderError(msg)
            if finish and finish != "STOP":
                msg = f"Generation stopped: {finish}"
                raise ProviderError(msg)
            for part in (candidate.get("content") or {}).get("parts") or []:
                inline = part.get("inlineData")
                if not inline:
                    continue
                try:
                    data = base64.b64decode(inline.get("data", ""), validate=True)
                except (binascii.Error, ValueError) as exc:
                    msg = "Provider returned undecodable image data"
                    raise ProviderError(msg) from exc
                if not data:
                    continue
                mime_type = inline.get("mimeType") or "image/png"
                if not isinstance(mime_type, str):
                    raise TypeError(f"mimeType is {type(mime_type).__name__}")
                return GeneratedImage(
                    data=data,
                    mime_type=mime_type,
                    model=self.model,
                )

        msg = "No images received from API (Unknown Reason)."
        raise ProviderError(msg)


def create_provider(config: ProviderConfig) -> ImageProvider:
    """Build the provider named in ``[provider] name``."""
    if config.name == "gemini":
        return GeminiImageProvider(
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
        )
    msg = f"Unknown image provider: {config.name!r}"
    raise ValueError(msg)
