"""Tests for messageflow/logging/audit.py: JSON audit logging."""

import contextvars
import json
import logging
import sys

from messageflow.logging.audit import (
    LOGGER_NAME,
    JSONFormatter,
    RequestTimer,
    bind_context,
    generate_request_id,
    get_audit_logger,
    request_id_var,
    setup_logging,
    tenant_id_var,
)


def _record(msg: str = "test", **kwargs) -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="",
        lineno=0, msg=msg, args=(), exc_info=None, **kwargs,
    )


class TestJSONFormatter:

    def test_output_is_valid_json(self):
        parsed = json.loads(JSONFormatter().format(_record("hello")))
        assert parsed["message"] == "hello"
        assert parsed["level"] == "INFO"
        assert "timestamp" in parsed

    def test_includes_request_id(self):
        token = request_id_var.set("req-abc123")
        try:
            parsed = json.loads(JSONFormatter().format(_record()))
            assert parsed["request_id"] == "req-abc123"
        finally:
            request_id_var.reset(token)

    def test_includes_tenant_when_set(self):
        token = tenant_id_var.set(42)
        try:
            parsed = json.loads(JSONFormatter().format(_record()))
            assert parsed["tenant_id"] == 42
        finally:
            tenant_id_var.reset(token)

    def test_omits_tenant_when_unset(self):
        parsed = json.loads(JSONFormatter().format(_record()))
        assert "tenant_id" not in parsed

    def test_includes_audit_data(self):
        record = _record()
        record.audit_data = {"provider_id": 3, "model": "gpt-4o-mini"}
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["provider_id"] == 3
        assert parsed["model"] == "gpt-4o-mini"

    def test_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                name="test", level=logging.ERROR, pathname="",
                lineno=0, msg="failed", args=(), exc_info=sys.exc_info(),
            )
        parsed = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in parsed["exception"]

    def test_empty_request_id_default(self):
        parsed = json.loads(JSONFormatter().format(_record()))
        assert parsed["request_id"] == ""


class TestBindContext:

    def test_sets_both_fields(self):
        ctx = contextvars.copy_context()
        ctx.run(bind_context, tenant_id=7, request_id="health-7")
        parsed = json.loads(ctx.run(JSONFormatter().format, _record()))
        assert parsed["tenant_id"] == 7
        assert parsed["request_id"] == "health-7"

    def test_none_leaves_field_untouched(self):
        before = tenant_id_var.get()
        ctx = contextvars.copy_context()
        ctx.run(bind_context, tenant_id=3)
        ctx.run(bind_context, request_id="abc")
        assert ctx.run(tenant_id_var.get) == 3
        assert tenant_id_var.get() == before


class TestGenerateRequestId:

    def test_length(self):
        assert len(generate_request_id()) == 12

    def test_uniqueness(self):
        ids = {generate_request_id() for _ in range(100)}
        assert len(ids) == 100


class TestRequestTimer:

    def test_measures_elapsed(self):
        with RequestTimer() as timer:
            _ = sum(range(1000))
        assert timer.elapsed_ms > 0
        assert isinstance(timer.elapsed_ms, float)


class TestSetupLogging:

    def test_creates_stdout_handler(self, override_settings):
        override_settings(AUDIT_LOG_FILE="")
        setup_logging()
        logger = get_audit_logger()
        assert logger.name == LOGGER_NAME
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.StreamHandler)
        assert logger.propagate is False

    def test_adds_file_handler(self, override_settings, tmp_path):
        path = tmp_path / "audit.log"
        override_settings(AUDIT_LOG_FILE=str(path), LOG_LEVEL="debug")
        setup_logging()
        logger = get_audit_logger()
        try:
            assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)
            assert logger.level == logging.DEBUG
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()
