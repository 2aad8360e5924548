"""Per-operation timing for ``--verbose`` runs.

Every public service method is wrapped in :func:`traced`. While telemetry
is off the wrapper costs one ContextVar lookup. While it is on, the method
runs inside a root :class:`Span`; nested :func:`trace_span` blocks (one per
generated image, one per cascade phase, ...) hang off it, and the finished
tree lands in ``ServiceResult.meta["telemetry"]`` annotated with the
operation's outcome.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from artcards.services.result import ServiceResult

log = structlog.get_logger("artcards.telemetry")

_enabled: ContextVar[bool] = ContextVar("artcards_telemetry", default=False)
_current_span: ContextVar[Span | None] = ContextVar("artcards_span", default=None)

_P = ParamSpec("_P")
_R = TypeVar("_R")


@dataclass
class Span:
    """One timed step. Children are appended in the order they start."""

    name: str
    parent: Span | None = None
    children: list[Span] = field(default_factory=list)
    annotations: dict[str, Any] = field(default_factory=dict)
    started: float = field(default_factory=time.perf_counter)
    finished: float | None = None

    @property
    def duration_ms(self) -> float:
        if self.finished is None:
            return 0.0
        return (self.finished - self.started) * 1000

    def end(self) -> None:
        self.finished = time.perf_counter()

    def annotate(self, key: str, value: Any) -> None:
        self.annotations[key] = value

    def to_dict(self) -> dict[str, Any]:
        node: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            node["annotations"] = dict(self.annotations)
        if self.children:
            node["children"] = [child.to_dict() for child in self.children]
        return node


@contextmanager
def trace_span(name: str, **annotations: Any) -> Iterator[Span | None]:
    """Time a block as a child of the running operation's span.

    Yields ``None`` when telemetry is off or no traced operation is running,
    so callers guard ``span.annotate`` with ``if span is not None``.
    """
    parent = _current_span.get() if _enabled.get() else None
    if parent is None:
        yield None
        return

    span = Span(name=name, parent=parent, annotations=dict(annotations))
    parent.children.append(span)
    token = _current_span.set(span)
    try:
        yield span
    finally:
        span.end()
        _current_span.reset(token)


def _record_outcome(span: Span, result: ServiceResult) -> None:
    span.annotate("ok", result.ok)
    if result.error is not None:
        span.annotate("error_code", result.error.code)
    if result.warnings:
        span.annotate("warnings", len(result.warnings))


def traced(func: Callable[_P, _R]) -> Callable[_P, _R]:  # noqa: UP047
    """Run a service method under a root span and attach the span tree to its result."""

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> _R:
        if not _enabled.get():
            return func(*args, **kwargs)

        root = Span(name=func.__qualname__)
        token = _current_span.set(root)
        try:
            outcome = func(*args, **kwargs)
        finally:
            root.end()
            _current_span.reset(token)

        log.debug(
            "operation_timed",
            span_name=root.name,
            duration_ms=round(root.duration_ms, 2),
            steps=len(root.children),
        )
        if not isinstance(outcome, ServiceResult):
            return outcome
        _record_outcome(root, outcome)
        meta = {**(outcome.meta or {}), "telemetry": root.to_dict()}
        return outcome.model_copy(update={"meta": meta})  # type: ignore[return-value]

    return wrapper


def enable_telemetry() -> None:
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)
