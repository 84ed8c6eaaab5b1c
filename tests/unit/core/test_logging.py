"""Tests for structured logging configuration."""

import io
import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from tablesink.contracts import TransportError
from tablesink.core.logging import configure_logging, get_logger, sink_context
from tablesink.sink.committer import BatchCommitter
from tablesink.sink.runner import RunnerRetryConfig, SinkRunner
from tests.helpers.doubles import events, make_config


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(json_output=True)

    get_logger("test").info("batch written", table="events", writes=3)

    data = json.loads(capsys.readouterr().out.strip().split("\n")[-1])
    assert data["event"] == "batch written"
    assert data["table"] == "events"
    assert data["writes"] == 3
    assert data["level"] == "info"


def test_console_output(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(json_output=False)

    get_logger("test").info("batch written", table="events")

    out = capsys.readouterr().out
    assert "batch written" in out
    assert not out.strip().startswith("{")


def test_level_filters_messages(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(json_output=True, level="warning")

    logger = get_logger("test")
    logger.info("hidden")
    logger.warning("shown")

    out = capsys.readouterr().out
    assert "hidden" not in out
    assert "shown" in out


def test_stdlib_loggers_share_the_output(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(json_output=True)

    logging.getLogger("tenacity").warning("stdlib message")

    data = json.loads(capsys.readouterr().out.strip().split("\n")[-1])
    assert data["event"] == "stdlib message"


def test_sqlalchemy_loggers_kept_at_warning_in_debug_mode() -> None:
    configure_logging(level="DEBUG")

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    assert logging.getLogger().level == logging.DEBUG


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_lines_name_logger_and_component() -> None:
    stream = io.StringIO()
    configure_logging(json_output=True, stream=stream)

    get_logger("tablesink.storage.sql").info("Batch written", cells=2)
    logging.getLogger("sqlalchemy.engine").warning("pool exhausted")

    storage_line, library_line = _lines(stream)
    assert storage_line["logger"] == "tablesink.storage.sql"
    assert storage_line["component"] == "storage"
    assert library_line["component"] == "sqlalchemy"


def test_sink_context_binds_only_inside_block() -> None:
    stream = io.StringIO()
    configure_logging(json_output=True, stream=stream)
    logger = get_logger("tablesink.sink.committer")

    with sink_context(table="events"):
        logger.info("inside")
    logger.info("outside")

    inside, outside = _lines(stream)
    assert inside["table"] == "events"
    assert "table" not in outside


def test_runner_lines_carry_table(channel, recording_storage, recording_table, row_keys) -> None:
    stream = io.StringIO()
    configure_logging(json_output=True, stream=stream)
    committer = BatchCommitter(make_config(serializer="regex"), channel, recording_storage, row_keys=row_keys)
    committer.start()
    channel.put_all(events("a"))
    recording_table.batch_error = TransportError("unavailable")

    SinkRunner(committer, RunnerRetryConfig(jitter=0.0), sleep=lambda s: None).run(max_cycles=2)

    retry_lines = [line for line in _lines(stream) if line["event"] == "Delivery failed, retrying cycle"]
    assert retry_lines
    assert retry_lines[0]["table"] == "events"
    assert retry_lines[0]["column_family"] == "d"
    assert retry_lines[0]["component"] == "sink"


def test_unknown_level_rejected() -> None:
    with pytest.raises(ValueError, match="LOUD"):
        configure_logging(level="loud")
