"""Structured logging and OpenTelemetry spans for forma-core.

This module provides:
- configure_logging: structlog processors plus the stdlib level for the
  ``forma_core`` logger tree (the compiler modules log through stdlib logging)
- span: an OpenTelemetry span that emits started/completed/failed events
- compile_operation: span preset for compiling and rendering element trees

Only opentelemetry-api is required. Spans are no-ops until the host
application installs an SDK and a tracer provider.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
import logging
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode
import structlog

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer
    from structlog.stdlib import BoundLogger

_logger: BoundLogger | None = None
_tracer: Tracer | None = None

# Instrumentation scope for spans and the name of the span logger
TRACER_NAME = "forma.core"

# Root of the stdlib logger tree used by the compiler modules
PACKAGE_LOGGER = "forma_core"

_PRIMITIVES = (str, bool, int, float)


def get_logger() -> BoundLogger:
    """Return the logger that span events are written to."""
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(TRACER_NAME)
    assert _logger is not None  # Type narrowing for mypy
    return _logger


def get_tracer() -> Tracer:
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def _level_number(log_level: str) -> int:
    levels = logging.getLevelNamesMapping()
    try:
        return levels[log_level.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown log level '{log_level}'. Available: {', '.join(sorted(levels))}"
        ) from None


def _processors(*, json_format: bool, add_timestamp: bool) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    return processors


def configure_logging(
    *,
    log_level: str = "INFO",
    json_format: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for forma-core.

    Structlog events (build, cache and invalidation) and the stdlib records of
    the compiler modules end up on the same stdlib handlers, filtered at
    ``log_level``.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Render events as JSON lines; otherwise as console text.
        add_timestamp: Prefix events with a UTC ISO timestamp.

    Raises:
        ValueError: If ``log_level`` is not a known level name.

    Example:
        >>> configure_logging(log_level="DEBUG", json_format=False)
    """
    level = _level_number(log_level)
    structlog.configure(
        processors=_processors(json_format=json_format, add_timestamp=add_timestamp),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def span_attributes(values: Mapping[str, Any]) -> dict[str, Any]:
    """Reduce arbitrary values to attributes OpenTelemetry accepts.

    None values are dropped, primitives pass through, sequences of primitives
    become tuples and everything else is stringified.

    Example:
        >>> span_attributes({"stack": ["html", "htmx"], "project": None, "n": 2})
        {'stack': ('html', 'htmx'), 'n': 2}
    """
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, _PRIMITIVES):
            cleaned[key] = value
        elif isinstance(value, Sequence) and all(isinstance(v, _PRIMITIVES) for v in value):
            cleaned[key] = tuple(value)
        else:
            cleaned[key] = str(value)
    return cleaned


@contextmanager
def span(
    name: str,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Mapping[str, Any] | None = None,
    log_start: bool = True,
    log_end: bool = True,
) -> Iterator[Span]:
    """Run a block inside an OpenTelemetry span and log its outcome.

    Emits ``<name>_started`` (debug), ``<name>_completed`` (info, with
    ``duration_ms``) or ``<name>_failed`` (error). Exceptions are recorded on
    the span and re-raised.

    Args:
        name: Span name (e.g., "incremental_build", "render").
        kind: Span kind.
        attributes: Span attributes; cleaned with span_attributes().
        log_start: Log the started event.
        log_end: Log the completed event.

    Yields:
        The active span.

    Example:
        >>> with span("incremental_build", attributes={"build.files": 3}):
        ...     builder.execute(plan, compile_fn)
    """
    attrs = span_attributes(attributes or {})
    logger = get_logger()
    started = time.perf_counter()

    with get_tracer().start_as_current_span(name, kind=kind, attributes=attrs) as s:
        if log_start:
            logger.debug(f"{name}_started", **attrs)
        try:
            yield s
        except Exception as exc:
            s.set_status(Status(StatusCode.ERROR, str(exc)))
            s.record_exception(exc)
            logger.error(
                f"{name}_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                **attrs,
            )
            raise
        s.set_status(Status(StatusCode.OK))
        if log_end:
            duration_ms = round((time.perf_counter() - started) * 1000, 3)
            logger.info(f"{name}_completed", duration_ms=duration_ms, **attrs)


@contextmanager
def compile_operation(
    operation: str,
    *,
    platform_stack: Sequence[str],
    output_format: str | None = None,
    elements: int | None = None,
    project: str | None = None,
) -> Iterator[Span]:
    """Span preset for compiler operations, with ``forma.*`` attributes.

    Example:
        >>> with compile_operation("render", platform_stack=["html"], elements=3):
        ...     compiler.serialize(tags, context, configs)
    """
    attrs = {
        "forma.operation": operation,
        "forma.platform_stack": list(platform_stack),
        "forma.output_format": output_format,
        "forma.elements": elements,
        "forma.project": project,
    }
    with span(f"forma.{operation}", attributes=attrs, log_start=False) as s:
        yield s
