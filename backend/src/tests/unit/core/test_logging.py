"""
Tests for log formatting.
"""

import json
import logging

from docsagent.core.logging import JSONFormatter, get_logger


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("docsagent.tasks", logging.INFO, __file__, 10, "Task processed", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    payload = json.loads(JSONFormatter().format(_record(task_id="t1", duration_ms=12)))

    assert payload["message"] == "Task processed"
    assert payload["level"] == "INFO"
    assert payload["task_id"] == "t1"
    assert payload["duration_ms"] == 12


def test_get_logger_namespaces_under_package():
    assert get_logger("tasks.dispatcher").name == "docsagent.tasks.dispatcher"
    assert get_logger("docsagent.auth").name == "docsagent.auth"
