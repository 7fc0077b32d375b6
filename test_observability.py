"""
Observability Validation Test

This test validates the logging stack:
1. Correlation context (tenant, workflow, stage, table) nests and resets
2. Context is isolated between concurrent provisioning attempts
3. Structured and human-readable formatters include correlation IDs
"""

import asyncio
import json
import logging

import pytest

from core.observability.logging import (
    CorrelationContext,
    HumanReadableFormatter,
    StructuredFormatter,
    get_correlation_context,
    get_logger,
    with_correlation,
)


def _record(msg="Table created", extra_fields=None):
    record = logging.LogRecord(
        name="core.provisioning.provisioner",
        level=logging.INFO,
        pathname="provisioner.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if extra_fields is not None:
        record.extra_fields = extra_fields
    return record


class TestCorrelationContext:
    """Test correlation context handling."""

    def test_to_dict_drops_empty_values(self):
        ctx = CorrelationContext(tenant_id="acme", stage="table")
        assert ctx.to_dict() == {"tenant_id": "acme", "stage": "table"}

    def test_merge_keeps_outer_values(self):
        ctx = CorrelationContext(tenant_id="acme").merge(table_key="images", stage=None)
        assert ctx.tenant_id == "acme"
        assert ctx.table_key == "images"
        assert ctx.stage is None

    def test_nesting_and_reset(self):
        """Inner blocks add fields; leaving a block restores the outer context."""
        assert get_correlation_context().tenant_id is None

        with with_correlation(tenant_id="acme"):
            with with_correlation(stage="table", table_key="images"):
                inner = get_correlation_context()
                assert (inner.tenant_id, inner.stage, inner.table_key) == ("acme", "table", "images")
            outer = get_correlation_context()
            assert outer.tenant_id == "acme"
            assert outer.table_key is None

        assert get_correlation_context().tenant_id is None

    def test_isolated_between_tasks(self):
        """Concurrent attempts never see each other's tenant."""
        seen = {}

        async def attempt(tenant_id):
            with with_correlation(tenant_id=tenant_id):
                await asyncio.sleep(0)
                seen[tenant_id] = get_correlation_context().tenant_id

        async def scenario():
            await asyncio.gather(attempt("acme"), attempt("globex"))

        asyncio.run(scenario())

        assert seen == {"acme": "acme", "globex": "globex"}


class TestFormatters:
    """Test log output formats."""

    def test_structured_formatter_json_output(self):
        formatter = StructuredFormatter()

        with with_correlation(tenant_id="acme", table_key="images"):
            output = formatter.format(_record(extra_fields={"table_id": 641}))

        data = json.loads(output)
        assert data["message"] == "Table created"
        assert data["level"] == "INFO"
        assert data["tenant_id"] == "acme"
        assert data["table_key"] == "images"
        assert data["table_id"] == 641

    def test_structured_timestamp_is_utc(self):
        record = _record()
        record.created = 0.0

        data = json.loads(StructuredFormatter().format(record))

        assert data["timestamp"] == "1970-01-01T00:00:00+00:00"

    def test_human_readable_formatter(self):
        formatter = HumanReadableFormatter()

        with with_correlation(tenant_id="acme", stage="rollback"):
            output = formatter.format(_record("Rolled back", extra_fields={"tables": 3}))

        assert "[acme/rollback]" in output
        assert "Rolled back" in output
        assert "tables=3" in output

    def test_human_readable_without_context(self):
        output = HumanReadableFormatter().format(_record())
        assert "[-]" in output


class TestCorrelatedLogger:

    def test_extra_fields_reach_handler(self):
        records = []

        class Collect(logging.Handler):
            def emit(self, record):
                records.append(record)

        logger = get_logger("tests.observability")
        handler = Collect()
        logging.getLogger("tests.observability").addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("Linked", extra_fields={"related_field_id": 9})
        finally:
            logging.getLogger("tests.observability").removeHandler(handler)

        assert len(records) == 1
        assert records[0].getMessage() == "Linked"
        assert records[0].extra_fields == {"related_field_id": 9}

    @pytest.mark.parametrize("level", ["debug", "info", "warning", "error"])
    def test_level_methods(self, level):
        logger = get_logger("tests.observability.levels")
        logger.setLevel(logging.DEBUG)
        getattr(logger, level)("message")
