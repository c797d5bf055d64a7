"""Tests: structured log formatters."""

import json
import logging

import pytest
from flask import g

from docledger.middleware.logging_config import JSONFormatter, ReadableFormatter, RequestContextFilter
from docledger.middleware.tenant_context import TenantContext


def _record(**extra):
    record = logging.LogRecord(
        name="docledger.services.promotion_engine",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Document %s promoted",
        args=("doc-1",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
def test_json_formatter_lifts_document_context():
    line = JSONFormatter().format(_record(tenant_id=3, document_id="doc-1", version=2, unrelated="x"))
    entry = json.loads(line)
    assert entry["message"] == "Document doc-1 promoted"
    assert entry["level"] == "INFO"
    assert entry["tenant_id"] == 3
    assert entry["document_id"] == "doc-1"
    assert entry["version"] == 2
    assert "unrelated" not in entry
    assert "actor_id" not in entry


@pytest.mark.unit
def test_readable_formatter_appends_document():
    line = ReadableFormatter().format(_record(document_id="doc-1"))
    assert "Document doc-1 promoted" in line
    assert line.endswith("[doc=doc-1]")


@pytest.mark.unit
def test_readable_formatter_tags_tenant_and_version():
    line = ReadableFormatter().format(_record(tenant_id=3, document_id="doc-1", version=2))
    assert line.endswith("[t=3 doc=doc-1 v2]")


@pytest.mark.unit
def test_request_filter_fills_tenant_and_actor(app):
    with app.test_request_context("/api/v1/documents", method="POST"):
        g.tenant_context = TenantContext(tenant_id=7, actor_id="alice")
        record = _record()
        assert RequestContextFilter().filter(record) is True

    assert record.tenant_id == 7
    assert record.actor_id == "alice"
    assert record.path == "/api/v1/documents"
    assert record.method == "POST"


@pytest.mark.unit
def test_request_filter_keeps_explicit_tenant(app):
    with app.test_request_context("/api/v1/documents"):
        g.tenant_context = TenantContext(tenant_id=7, actor_id="alice")
        record = _record(tenant_id=9)
        RequestContextFilter().filter(record)

    assert record.tenant_id == 9
