from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

from docqa.logging_config import AUDIT_LOGGER_NAME, JsonLineFormatter, configure_logging, get_audit_logger


def test_formatter_merges_dict_messages_and_extras() -> None:
    record = logging.makeLogRecord(
        {"name": "docqa.test", "levelname": "INFO", "msg": {"event": "ingest", "chunks": 3}, "request_id": "r-1"}
    )

    line = json.loads(JsonLineFormatter().format(record))

    assert line["event"] == "ingest"
    assert line["chunks"] == 3
    assert line["request_id"] == "r-1"
    assert line["logger"] == "docqa.test"
    assert line["ts"].endswith("Z")
    assert "message" not in line
    assert "args" not in line


def test_formatter_renders_text_messages_and_exceptions() -> None:
    try:
        raise ValueError("bad page")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.makeLogRecord(
        {"levelname": "ERROR", "msg": "failed %s", "args": ("doc-1",), "exc_info": exc_info}
    )

    line = json.loads(JsonLineFormatter().format(record))

    assert line["message"] == "failed doc-1"
    assert "ValueError: bad page" in line["exc_info"]


def test_audit_records_go_to_file_only(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    audit_path = configure_logging(tmp_path / "logs", "debug")

    get_audit_logger().info({"event": "chat", "document_id": "doc-1"})
    logging.getLogger("docqa.test").warning("console only")

    assert audit_path == tmp_path / "logs" / "audit.log"
    assert get_audit_logger().name == AUDIT_LOGGER_NAME
    assert get_audit_logger().propagate is False
    assert logging.getLogger().level == logging.DEBUG

    audit_lines = [json.loads(line) for line in audit_path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in audit_lines] == ["chat"]

    console = capsys.readouterr().err
    assert "console only" in console
    assert '"event": "chat"' not in console
