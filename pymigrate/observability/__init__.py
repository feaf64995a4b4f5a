"""
Observability and logging for pymigrate.

Logging:
    - configure_logging(): Configure loguru-based logging
    - configure_logging_from_env(): Configure from environment variables
    - install_logging_context(): Context manager binding install-run context
    - step_logging_context(): Context manager binding the running step

Tracing (requires `pip install pymigrate[tracing]`):
    - TracingConfig: Configuration dataclass for tracing
    - configure_tracing(): Configure OpenTelemetry tracing
    - is_tracing_enabled(): Check if tracing is enabled
    - trace_install(): Context manager for install spans
    - trace_step(): Context manager for step spans
    - add_span_event(): Add event to current span
"""

from pymigrate.observability.logging import (
    configure_logging,
    configure_logging_from_env,
    install_logging_context,
    step_logging_context,
)
from pymigrate.observability.tracing import (
    TracingConfig,
    add_span_event,
    configure_tracing,
    is_tracing_enabled,
    trace_install,
    trace_step,
)

__all__ = [
    # Logging
    "configure_logging",
    "configure_logging_from_env",
    "install_logging_context",
    "step_logging_context",
    # Tracing
    "TracingConfig",
    "configure_tracing",
    "is_tracing_enabled",
    "trace_install",
    "trace_step",
    "add_span_event",
]
