import json
import logging
import sys

from leetdash.core.logging import JsonFormatter


def _record(**extra):
    record = logging.LogRecord(
        name="leetdash.services.cache.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Background cache refresh completed for: %s",
        args=("admin",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_emits_message_and_extra_fields():
    payload = json.loads(JsonFormatter().format(_record(cache_key="admin")))

    assert payload["level"] == "INFO"
    assert payload["name"] == "leetdash.services.cache.service"
    assert payload["message"] == "Background cache refresh completed for: admin"
    assert payload["cache_key"] == "admin"
    assert payload["timestamp"].endswith("+00:00")


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("producer failed")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: producer failed" in payload["exc_info"]
    assert "args" not in payload
