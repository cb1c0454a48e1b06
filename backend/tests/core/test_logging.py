import io
import json
import logging
import sys

import pytest

from backend.app.core.logging import JSONFormatter, resolve_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("backend.app.services.rewards", logging.INFO, __file__, 1, "Reward redeemed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_ledger_ids_are_lifted_from_data() -> None:
    payload = {"redemption_id": "r1", "user_id": "u1", "points_spent": 100}
    entry = json.loads(JSONFormatter(environment="dev").format(_record(data=payload)))

    assert entry["message"] == "Reward redeemed"
    assert entry["logger"] == "backend.app.services.rewards"
    assert entry["env"] == "dev"
    assert entry["user_id"] == "u1"
    assert entry["redemption_id"] == "r1"
    assert "points_spent" not in entry
    assert entry["data"] == payload
    assert entry["timestamp"].endswith("+00:00")


def test_exceptions_are_formatted() -> None:
    try:
        raise RuntimeError("database hiccup")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    entry = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: database hiccup" in entry["exception"]
    assert "env" not in entry


@pytest.mark.parametrize(
    ("name", "expected"),
    [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("chatty", logging.INFO), (None, logging.INFO)],
)
def test_resolve_level(name, expected) -> None:
    assert resolve_level(name) == expected


def test_setup_logging_writes_json_to_stream(restore_root_logger) -> None:
    stream = io.StringIO()
    root = setup_logging(stream=stream, level="INFO")

    assert len(root.handlers) == 1
    logging.getLogger("backend.cli").info("Granted points", extra={"data": {"user_id": "u9"}})
    logging.getLogger("sqlalchemy.engine").info("SELECT 1")

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["message"] for line in lines] == ["Granted points"]
    assert lines[0]["user_id"] == "u9"
