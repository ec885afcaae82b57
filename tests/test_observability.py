"""
Tests for request context and log formatting.
"""

import json
import logging

from roster.observability import (
    HumanFormatter,
    JSONFormatter,
    RequestContext,
    get_account_id,
    get_request_id,
    set_account_id,
)


def _record(msg="Scan received", **extra):
    record = logging.LogRecord("roster.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRequestContext:
    def test_sets_and_restores(self):
        assert get_request_id() is None

        with RequestContext(request_id="req-abc") as ctx:
            assert ctx.request_id == "req-abc"
            assert get_request_id() == "req-abc"
            set_account_id("acct-1")
            assert get_account_id() == "acct-1"

        assert get_request_id() is None
        assert get_account_id() is None

    def test_generates_id(self):
        with RequestContext() as ctx:
            assert ctx.request_id.startswith("req-")
            assert len(ctx.request_id) == 20


class TestJSONFormatter:
    def test_includes_context_and_extras(self):
        with RequestContext(request_id="req-abc"):
            set_account_id("acct-1")
            line = JSONFormatter().format(_record(rows=3))

        data = json.loads(line)
        assert data["message"] == "Scan received"
        assert data["level"] == "INFO"
        assert data["request_id"] == "req-abc"
        assert data["account_id"] == "acct-1"
        assert data["rows"] == 3

    def test_keeps_non_ascii(self):
        line = JSONFormatter().format(_record("Ana Gómez"))
        assert "Gómez" in line


class TestHumanFormatter:
    def test_format(self):
        with RequestContext(request_id="req-abc"):
            line = HumanFormatter().format(_record())

        assert "[INFO] roster.test: [req-abc] Scan received" in line
