"""Log routing for artcards.

Everything goes to stderr so stdout stays clean for command output. Lines
are rendered for humans by default, or as one JSON object per line with
``--log-json``. The ``artcards`` logger tree runs at DEBUG under
``--verbose`` and WARNING otherwise; chatty libraries stay at WARNING.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog

_APP_LOGGER = "artcards"
_QUIET_LIBRARIES = ("httpx", "httpcore", "PIL")

# Event keys whose values are API keys and must never reach a log sink.
_SECRET_KEYS = frozenset({"api_key", "key", "secret"})


def _redact_secrets(
    _logger: Any, _method: str, event: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for name in _SECRET_KEYS & event.keys():
        if event[name]:
            event[name] = "***"
    return event


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _stderr_handler(log_json: bool) -> logging.Handler:
    renderer: structlog.types.Processor
    if log_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    return handler


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """Route structlog and stdlib logging through a single stderr handler.

    Safe to call repeatedly; each call replaces the previous handler.
    """
    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers[:] = [_stderr_handler(log_json)]
    root.setLevel(logging.WARNING)

    logging.getLogger(_APP_LOGGER).setLevel(logging.DEBUG if verbose else logging.WARNING)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def bound_request(op: str, **ids: Any) -> Iterator[None]:
    """Tag every log line emitted inside the block with *op* and entity ids.

    ``None`` values are dropped so callers can pass optional ids directly.
    """
    values = {k: v for k, v in ids.items() if v is not None}
    with structlog.contextvars.bound_contextvars(op=op, **values):
        yield
