"""
Loguru logging configuration for pymigrate.

Library modules log through ``from loguru import logger``. Applications that
want pymigrate's format call configure_logging() (or configure_logging_from_env()
in deployments); install runs bind their context (target version, version at
start of run, current step) so every line of a run can be traced back to it.
"""

import json
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Generator

from loguru import logger

_CONTEXT_KEYS = ("target_version", "current_version", "step")

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
    show_context: bool = True,
) -> None:
    """
    Replace loguru's handlers with pymigrate's console (and optional file) output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path, rotated at 100 MB
        json_logs: Emit one JSON object per line instead of text
        show_context: Include the install-run context in each line

    Examples:
        configure_logging(level="DEBUG", log_file="logs/migrate.log")
        configure_logging(json_logs=True)
    """
    if json_logs:
        format_record = _json_format(show_context)
    else:
        format_record = _text_format(show_context)

    logger.remove()
    logger.add(sys.stderr, level=level, format=format_record, colorize=not json_logs)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=format_record,
            colorize=False,
            rotation="100 MB",
            retention="30 days",
        )

    logger.info(f"pymigrate logging configured at level {level}")


def configure_logging_from_env() -> None:
    """Configure logging from environment variables.

    Environment variables:
        PYMIGRATE_LOG_LEVEL: Log level (default INFO)
        PYMIGRATE_LOG_FORMAT: "json" or "console" (default console)
        PYMIGRATE_LOG_FILE: Optional file path for log output
        PYMIGRATE_LOG_CONTEXT: Whether to show context ("true" or "false")
    """
    configure_logging(
        level=os.getenv("PYMIGRATE_LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("PYMIGRATE_LOG_FILE"),
        json_logs=os.getenv("PYMIGRATE_LOG_FORMAT", "console").lower() == "json",
        show_context=os.getenv("PYMIGRATE_LOG_CONTEXT", "true").lower() in ("true", "1", "yes"),
    )


def _text_format(show_context: bool) -> Callable[[dict[str, Any]], str]:
    def format_record(record: dict[str, Any]) -> str:
        suffix = ""
        if show_context:
            extra = record["extra"]
            pairs = [f"{key}={extra[key]}" for key in _CONTEXT_KEYS if key in extra]
            if pairs:
                suffix = " | " + " ".join(pairs)
        record["extra"]["_context"] = suffix
        return _TEXT_FORMAT + "{extra[_context]}\n{exception}"

    return format_record


def _json_format(show_context: bool) -> Callable[[dict[str, Any]], str]:
    def format_record(record: dict[str, Any]) -> str:
        record["extra"]["_json"] = _record_to_json(record, show_context)
        return "{extra[_json]}\n"

    return format_record


def _record_to_json(record: dict[str, Any], show_context: bool = True) -> str:
    """Render a loguru record as a single JSON line.

    Install context goes under "context", any other bound values under "extra".
    """
    extra = {key: value for key, value in record["extra"].items() if not key.startswith("_")}
    context = {key: extra.pop(key) for key in _CONTEXT_KEYS if key in extra}

    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    if show_context and context:
        entry["context"] = context
    if extra:
        entry["extra"] = extra

    exception = record["exception"]
    if exception is not None:
        entry["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value is not None else None,
        }

    return json.dumps(entry, default=str)


@contextmanager
def install_logging_context(
    target_version: int, current_version: int | None = None
) -> Generator[None, None, None]:
    """Bind install-run context to all logs within scope.

    Example:
        with install_logging_context(5, current_version=2):
            logger.info("Applying steps")  # Includes target and current version
    """
    fields: dict[str, Any] = {"target_version": target_version}
    if current_version is not None:
        fields["current_version"] = current_version
    with logger.contextualize(**fields):
        yield


@contextmanager
def step_logging_context(step: str) -> Generator[None, None, None]:
    with logger.contextualize(step=step):
        yield
