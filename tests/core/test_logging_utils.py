from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from commonbot.core.config import LogConfig
from commonbot.core.logging_utils import (
    log_event,
    sanitize_log_value,
    setup_rotating_logger,
)


def test_sanitize_redacts_tokens() -> None:
    assert sanitize_log_value("Authorization: BEARER abc.def") == (
        "Authorization: BEARER [REDACTED]"
    )
    assert sanitize_log_value("token xoxb-123-456") == "token [REDACTED]"
    assert sanitize_log_value({"bot_password": "pw", "name": "zbot"}) == {
        "bot_password": "[REDACTED]",
        "name": "zbot",
    }
    assert sanitize_log_value("x" * 2100).endswith("...")


def test_log_event_emits_json_with_exc_info(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.logging_utils")
    caplog.set_level(logging.INFO, logger="test.logging_utils")
    error = RuntimeError("boom")

    log_event(
        logger, logging.ERROR, "unit.failed", channel_id="c1", token="t", exc=error
    )

    record = caplog.records[-1]
    payload = json.loads(record.getMessage())
    assert payload == {
        "event": "unit.failed",
        "channel_id": "c1",
        "token": "[REDACTED]",
        "error": "boom",
        "error_type": "RuntimeError",
    }
    assert record.exc_info is not None
    assert record.exc_info[1] is error


def test_setup_rotating_logger_is_idempotent(tmp_path: Path) -> None:
    config = LogConfig(
        path=tmp_path / "log" / "bot.log", max_bytes=1024, backup_count=1
    )

    logger = setup_rotating_logger("test.rotating", config)
    same = setup_rotating_logger("test.rotating", config)
    logger.info("hello")
    for handler in logger.handlers:
        handler.flush()

    assert same is logger
    assert len(logger.handlers) == 1
    assert "hello" in config.path.read_text(encoding="utf-8")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
