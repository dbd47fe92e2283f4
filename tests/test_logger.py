# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

import json
import logging
import os
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from loguru import logger
from opentelemetry.sdk.trace import TracerProvider

from coreason_kubeconfig.utils.logger import configure_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Puts the default configuration back once the environment patch is gone."""
    yield
    configure_logging()


def _json_records(text: str) -> list[dict[str, Any]]:
    records: list[dict[str, Any]] = []
    for line in text.strip().splitlines():
        try:
            records.append(json.loads(line)["record"])
        except (json.JSONDecodeError, KeyError):
            continue
    return records


def test_default_text_logging_goes_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_JSON": "false"}):
        configure_logging()
        logger.bind(endpoint="https://a").info("Text message")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Text message" in captured.err
        assert "'endpoint': 'https://a'" in captured.err


def test_json_logging_keeps_stdout_clean(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_JSON": "true"}):
        configure_logging()
        logger.bind(attempts=2).info("JSON message")

        captured = capsys.readouterr()
        assert captured.out == ""
        records = [r for r in _json_records(captured.err) if r["message"] == "JSON message"]
        assert records[0]["level"]["name"] == "INFO"
        assert records[0]["extra"]["attempts"] == 2


def test_log_level_filters_debug(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_LEVEL": "warning"}):
        configure_logging()
        logger.info("Info message")
        logger.warning("Warning message")

        captured = capsys.readouterr()
        assert "Info message" not in captured.err
        assert "Warning message" in captured.err


def test_invalid_log_level_falls_back_to_info(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_LEVEL": "INVALID_LEVEL_XYZ"}):
        configure_logging()
        logger.info("Info message")
        logger.debug("Debug message")

        captured = capsys.readouterr()
        assert "Info message" in captured.err
        assert "Debug message" not in captured.err
        assert logging.getLogger().level == logging.INFO


def test_reconfiguration_does_not_duplicate(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging()
    configure_logging()

    logger.info("Single message")

    assert capsys.readouterr().err.count("Single message") == 1


def test_trace_id_injection(capsys: pytest.CaptureFixture[str]) -> None:
    tracer = TracerProvider().get_tracer(__name__)

    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_JSON": "true"}):
        configure_logging()
        with tracer.start_as_current_span("resolve_kubeconfig") as span:
            logger.info("Trace message")
            ctx = span.get_span_context()

        records = [r for r in _json_records(capsys.readouterr().err) if r["message"] == "Trace message"]
        assert records[0]["extra"]["trace_id"] == format(ctx.trace_id, "032x")
        assert records[0]["extra"]["span_id"] == format(ctx.span_id, "016x")


def test_standard_logging_is_intercepted(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_JSON": "true"}):
        configure_logging()
        logging.getLogger("httpx").info("HTTP Request: GET https://a")

        records = [r for r in _json_records(capsys.readouterr().err) if r["message"] == "HTTP Request: GET https://a"]
        assert records[0]["level"]["name"] == "INFO"


def test_no_log_file_by_default(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("COREASON_KUBECONFIG_LOG_FILE", raising=False)
    configure_logging()
    logger.info("Console only")
    logger.complete()

    assert list(tmp_path.iterdir()) == []


def test_log_file_sink(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "resolver.jsonl"

    with patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_FILE": str(log_file)}):
        configure_logging()
        logger.info("File message")
        logger.complete()

    assert any(r["message"] == "File message" for r in _json_records(log_file.read_text()))


def test_unwritable_log_file_is_ignored(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "resolver.jsonl"

    with (
        patch.dict(os.environ, {"COREASON_KUBECONFIG_LOG_FILE": str(log_file)}),
        patch("pathlib.Path.mkdir", side_effect=PermissionError("read-only")),
    ):
        configure_logging()

    assert not log_file.exists()
