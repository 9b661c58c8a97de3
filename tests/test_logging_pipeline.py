"""Tests for structured logging utilities."""

from __future__ import annotations

import io
import json
import logging
import sys

from ptd.logging_pipeline import JsonFormatter, configure_logging


def test_configure_logging_emits_json() -> None:
    """JSON output carries the message and the ``extra`` context."""

    logger = logging.getLogger("ptd-logging-test")
    buffer = io.StringIO()
    handler = configure_logging(
        level=logging.INFO, json_output=True, stream=buffer, logger=logger
    )
    try:
        logger.info("sample", extra={"archive": "out.zip", "files": 3})
    finally:
        logger.removeHandler(handler)

    payload = json.loads(buffer.getvalue().strip())
    assert payload["message"] == "sample"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "ptd-logging-test"
    assert payload["context"] == {"archive": "out.zip", "files": 3}
    assert payload["timestamp"].endswith("+00:00")


def test_configure_logging_plain_text_respects_level() -> None:
    logger = logging.getLogger("ptd-logging-plain")
    buffer = io.StringIO()
    handler = configure_logging(level=logging.WARNING, stream=buffer, logger=logger)
    try:
        logger.info("hidden")
        logger.warning("shown")
    finally:
        logger.removeHandler(handler)

    output = buffer.getvalue()
    assert "hidden" not in output
    assert "WARNING ptd-logging-plain: shown" in output


def test_json_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.getLogger("ptd-logging-exc").makeRecord(
            "ptd-logging-exc",
            logging.ERROR,
            __file__,
            1,
            "failed",
            (),
            exc_info=sys.exc_info(),
        )

    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exception"]


def test_json_formatter_stringifies_unserializable_context() -> None:
    record = logging.LogRecord("ptd", logging.INFO, __file__, 1, "msg", (), None)
    record.path = object()

    payload = json.loads(JsonFormatter().format(record))
    assert payload["context"]["path"].startswith("<object object")


def test_library_events_reach_configured_handler(
    signer, tournament_envelope
) -> None:
    buffer = io.StringIO()
    handler = configure_logging(level=logging.DEBUG, json_output=True, stream=buffer)
    try:
        signer.sign(tournament_envelope)
    finally:
        logging.getLogger("ptd").removeHandler(handler)
        logging.getLogger("ptd").setLevel(logging.NOTSET)

    records = [json.loads(line) for line in buffer.getvalue().splitlines()]
    signed = next(r for r in records if r["message"] == "Signed document")
    assert signed["logger"] == "ptd.signing"
    assert signed["context"]["public_key_id"] == "test-key-1"
