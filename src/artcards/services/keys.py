"""KeyService: named provider API keys and per-request key resolution.

There is no process-wide "current key". Every generation call resolves its
key explicitly, in this order:

1. a key passed with the request,
2. a named key from the keyring,
3. ``[provider] api_key`` from configuration (or ``ARTCARDS_PROVIDER__API_KEY``).
"""

from __future__ import annotations

from dataclasses import dataclass

from artcards.infrastructure.records import CorruptRecordError
from artcards.services._helpers import failure
from artcards.services.base import BaseService
from artcards.services.result import ErrorCode, ServiceResult
from artcards.services.telemetry import traced


@dataclass(frozen=True)
class ResolvedKey:
    key: str
    source: str  # "explicit", "keyring:<name>" or "config"


class KeyService(BaseService):
    """Save, list and resolve provider API keys."""

    @traced
    def save_key(self, name: str, key: str) -> ServiceResult:
        op = "save_key"
        name = name.strip()
        key = key.strip()
        if not name or not key:
            return failure(op, ErrorCode.INVALID_INPUT, "Key name and value are both required")
        try:
            stored = self._repo.save_key(name, key)
        except CorruptRecordError as exc:
            return failure(op, ErrorCode.CORRUPT_RECORD, str(exc), name=name)
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc), name=name)
        return ServiceResult(ok=True, op=op, data={"name": stored.name, "key": stored.masked})

    @traced
    def list_keys(self, *, reveal: bool = False) -> ServiceResult:
        """Stored keys in keyring order. Values are masked unless *reveal* is set."""
        op = "list_keys"
        try:
            keys = self._repo.get_keys()
        except CorruptRecordError as exc:
            return failure(op, ErrorCode.CORRUPT_RECORD, str(exc))
        except OSError as exc:
            return failure(op, ErrorCode.IO_FAILED, str(exc))
        items = [{"name": k.name, "key": k.key if reveal else k.masked} for k in keys]
        return ServiceResult(ok=True, op=op, data={"items": items, "count": len(items)})

    def resolve_key(
        self, *, api_key: str | None = None, key_name: str | None = None
    ) -> tuple[ResolvedKey | None, ServiceResult | None]:
        """Pick the key for one request. Returns ``(key, None)`` or ``(None, error)``."""
        op = "resolve_key"
        if api_key:
            return ResolvedKey(api_key, "explicit"), None

        if key_name:
            try:
                keys = self._repo.get_keys()
            except CorruptRecordError as exc:
                return None, failure(op, ErrorCode.CORRUPT_RECORD, str(exc), name=key_name)
            except OSError as exc:
                return None, failure(op, ErrorCode.IO_FAILED, str(exc), name=key_name)
            for stored in keys:
                if stored.name == key_name:
                    return ResolvedKey(stored.key, f"keyring:{key_name}"), None
            return None, failure(op, ErrorCode.NOT_FOUND, "No stored key with that name", name=key_name)

        configured = self._ws.settings.provider.api_key
        if configured is not None and configured.get_secret_value():
            return ResolvedKey(configured.get_secret_value(), "config"), None
        return None, failure(
            op,
            ErrorCode.NO_API_KEY,
            "No API key: pass one explicitly, name a stored key, or set provider.api_key",
        )
