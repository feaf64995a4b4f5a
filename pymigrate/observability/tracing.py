"""
OpenTelemetry tracing integration for pymigrate.

Provides optional spans for install runs and migration steps. Tracing is
disabled by default and must be explicitly enabled via configure_tracing().

This module gracefully handles the case where OpenTelemetry is not installed,
allowing tracing to be an optional feature.

Example:
    >>> from pymigrate.observability import TracingConfig, configure_tracing
    >>> configure_tracing(TracingConfig(enabled=True, exporter="console"))
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Generator

from loguru import logger

from pymigrate import __version__

# Global state for tracing configuration
_tracing_enabled: bool = False
_tracer: Any = None
_current_span: ContextVar[Any] = ContextVar("current_span", default=None)


@dataclass
class TracingConfig:
    """Configuration for OpenTelemetry tracing.

    Attributes:
        enabled: Whether tracing is enabled.
        service_name: Service name for traces.
        endpoint: OTLP endpoint URL.
        exporter: Exporter type ("otlp", "console").
        sample_rate: Sampling rate (0.0 to 1.0).
    """

    enabled: bool = False
    service_name: str = "pymigrate"
    endpoint: str | None = None
    exporter: str = "otlp"
    sample_rate: float = 1.0


def configure_tracing(config: TracingConfig) -> None:
    """Configure and initialize OpenTelemetry tracing.

    If OpenTelemetry packages are not installed, tracing stays disabled and a
    warning is logged.

    Note:
        Install tracing dependencies with: pip install pymigrate[tracing]
    """
    global _tracing_enabled, _tracer

    if not config.enabled:
        _tracing_enabled = False
        _tracer = None
        logger.debug("Tracing is disabled")
        return

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
    except ImportError as e:
        logger.warning(
            f"OpenTelemetry not installed, tracing disabled: {e}. "
            "Install with: pip install pymigrate[tracing]"
        )
        _tracing_enabled = False
        _tracer = None
        return

    resource = Resource.create(
        {
            "service.name": config.service_name,
            "service.version": __version__,
        }
    )
    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(config.sample_rate))
    trace.set_tracer_provider(provider)

    if config.endpoint or config.exporter == "console":
        _configure_exporter(provider, config)

    _tracer = trace.get_tracer("pymigrate", __version__)
    _tracing_enabled = True

    logger.info(
        f"Tracing configured: service={config.service_name}, "
        f"endpoint={config.endpoint}, sample_rate={config.sample_rate}"
    )


def _configure_exporter(provider: Any, config: TracingConfig) -> None:
    if config.exporter == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
        except ImportError:
            logger.warning(
                "OTLP exporter not installed: pip install opentelemetry-exporter-otlp"
            )
            return
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.endpoint)))
        logger.debug(f"OTLP exporter configured for {config.endpoint}")

    elif config.exporter == "console":
        from opentelemetry.sdk.trace.export import (
            ConsoleSpanExporter,
            SimpleSpanProcessor,
        )

        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        logger.debug("Console exporter configured")

    else:
        logger.warning(f"Unknown trace exporter {config.exporter!r}, spans are not exported")


def is_tracing_enabled() -> bool:
    """Check if tracing is currently enabled."""
    return _tracing_enabled


@contextmanager
def _span(name: str, attributes: dict[str, Any]) -> Generator[Any, None, None]:
    from opentelemetry import trace
    from opentelemetry.trace import Status, StatusCode

    with _tracer.start_as_current_span(name, kind=trace.SpanKind.INTERNAL) as span:
        for key, value in attributes.items():
            span.set_attribute(f"pymigrate.{key}", value)

        token = _current_span.set(span)
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except BaseException as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            span.set_attribute("pymigrate.error_type", type(e).__name__)
            raise
        finally:
            _current_span.reset(token)


@contextmanager
def trace_install(target_version: int, **attributes: Any) -> Generator[Any, None, None]:
    """Context manager to create a span for one install run.

    Yields:
        Span object if tracing is enabled, None otherwise.

    Example:
        with trace_install(5, steps=3):
            ...
    """
    if not _tracing_enabled or _tracer is None:
        yield None
        return

    span_attributes: dict[str, Any] = {"type": "install", "target_version": target_version}
    span_attributes.update({key: str(value) for key, value in attributes.items()})
    with _span("pymigrate:install", span_attributes) as span:
        yield span


@contextmanager
def trace_step(description: str, min_version: int) -> Generator[Any, None, None]:
    """Context manager to create a span for a migration step."""
    if not _tracing_enabled or _tracer is None:
        yield None
        return

    with _span(
        f"step:{description}",
        {"type": "step", "step": description, "min_version": min_version},
    ) as span:
        yield span


def add_span_event(name: str, attributes: dict[str, Any] | None = None) -> None:
    """Add an event to the current span.

    Example:
        add_span_event("version_initialized", {"table": "version"})
    """
    if not _tracing_enabled:
        return

    span = _current_span.get()
    if span is not None:
        span.add_event(name, attributes=attributes or {})
