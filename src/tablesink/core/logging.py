# src/tablesink/core/logging.py
"""Structured logging for tablesink.

Every line carries the emitting logger and the tablesink component it
belongs to (``sink``, ``storage``, ``plugins``...), so committer, storage
and serializer events can be told apart in one stream. Records from
SQLAlchemy, tenacity and dynaconf go through the same renderer via
ProcessorFormatter.

Context bound with sink_context() is added to every line logged in that
block, including lines from the storage client and the serializer
registry:

    with sink_context(table="events", column_family="d"):
        runner.run()
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

ROOT_LOGGER = "tablesink"

# Library loggers and the most verbose level they may use. SQLAlchemy logs
# every statement once echo is on; dynaconf logs each loader it tries.
_LIBRARY_FLOOR: dict[str, int] = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "dynaconf": logging.WARNING,
    "tenacity": logging.INFO,
}


def _add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """tablesink.sink.committer -> component="sink"; library loggers keep their top-level name."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name:
        parts = name.split(".")
        event_dict["component"] = parts[1] if parts[0] == ROOT_LOGGER and len(parts) > 1 else parts[0]
    return event_dict


def _drop_formatter_keys(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)
    return event_dict


def configure_logging(*, json_output: bool = False, level: str = "INFO", stream: TextIO | None = None) -> None:
    """Route structlog and stdlib logging to one handler.

    Args:
        json_output: One JSON object per line instead of the console renderer.
        level: Level for tablesink loggers and the root logger.
        stream: Output stream (default: stdout at call time).
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level {level!r}")

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _add_component,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    renderer: list[Any] = (
        [_drop_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        if json_output
        else [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=False)]
    )

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # configure_logging() may run again (CLI, tests); cached loggers would keep the old chain
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(ProcessorFormatter(processors=renderer, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    logging.getLogger(ROOT_LOGGER).setLevel(log_level)

    for name, floor in _LIBRARY_FLOOR.items():
        logging.getLogger(name).setLevel(max(log_level, floor))


@contextmanager
def sink_context(**values: Any) -> Iterator[None]:
    """Bind values to every log line emitted by this thread inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a tablesink module (pass __name__)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
