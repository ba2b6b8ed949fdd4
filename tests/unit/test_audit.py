"""
Audit Logger Tests

Unit tests for audit entry construction, redaction and sink fan-out.
"""

import pytest
from pydantic import ValidationError

from datenassistent.config.constants import REDACTED_MARKER, AuditAction, AuditResult
from datenassistent.data_access.audit import AuditLogEntry, AuditLogger, StructlogAuditSink


class RecordingSink:
    def __init__(self) -> None:
        self.entries: list[AuditLogEntry] = []

    async def write(self, entry: AuditLogEntry) -> None:
        self.entries.append(entry)


class BrokenSink:
    async def write(self, entry: AuditLogEntry) -> None:
        raise RuntimeError("disk full")


class TestAuditLogEntry:
    """Tests for AuditLogEntry."""

    def test_timestamp_is_utc(self) -> None:
        entry = AuditLogEntry(
            action=AuditAction.INSERT, table_name="t_projects", result=AuditResult.SUCCESS
        )

        assert entry.timestamp.tzinfo is not None
        assert entry.timestamp.utcoffset().total_seconds() == 0

    def test_entry_is_immutable(self) -> None:
        entry = AuditLogEntry(
            action=AuditAction.INSERT, table_name="t_projects", result=AuditResult.SUCCESS
        )

        with pytest.raises(ValidationError):
            entry.table_name = "t_other"

    def test_redacted_copy(self) -> None:
        entry = AuditLogEntry(
            action=AuditAction.UPDATE,
            table_name="t_employees",
            result=AuditResult.FAILURE,
            filters={"name": "Anna"},
            values={"email": "anna@example.com"},
            error="duplicate key: anna@example.com",
        )

        redacted = entry.redacted()

        assert redacted.filters == REDACTED_MARKER
        assert redacted.values == REDACTED_MARKER
        assert "anna@example.com" not in redacted.error
        assert "[redacted-email]" in redacted.error
        assert entry.values == {"email": "anna@example.com"}

    def test_absent_fields_stay_absent(self) -> None:
        entry = AuditLogEntry(
            action=AuditAction.DELETE, table_name="t_projects", result=AuditResult.SUCCESS
        )

        redacted = entry.redacted()

        assert redacted.filters is None
        assert redacted.values is None
        assert redacted.error is None


class TestAuditLogger:
    """Tests for AuditLogger.record."""

    async def test_sinks_receive_redacted_entry(self) -> None:
        """
        Scenario: Record a failed insert outside debug mode.
        Expected: The sink sees redacted values; the returned entry keeps them.
        """
        sink = RecordingSink()
        audit = AuditLogger([sink], debug=False)

        entry = await audit.record(
            AuditAction.INSERT,
            "t_employees",
            AuditResult.FAILURE,
            user_id="u-1",
            values={"name": "Anna"},
            error="boom",
        )

        assert len(sink.entries) == 1
        assert sink.entries[0].values == REDACTED_MARKER
        assert sink.entries[0].user_id == "u-1"
        assert entry.values == {"name": "Anna"}

    async def test_debug_mode_writes_raw_entry(self) -> None:
        sink = RecordingSink()
        audit = AuditLogger([sink], debug=True)

        await audit.record(
            AuditAction.INSERT, "t_employees", AuditResult.SUCCESS, values={"name": "Anna"}
        )

        assert sink.entries[0].values == {"name": "Anna"}

    async def test_failing_sink_does_not_stop_others(self) -> None:
        """
        Scenario: The first sink raises.
        Expected: No exception escapes and the second sink still receives the entry.
        """
        sink = RecordingSink()
        audit = AuditLogger([BrokenSink(), sink])

        await audit.record(AuditAction.DELETE, "t_projects", AuditResult.SUCCESS)

        assert len(sink.entries) == 1

    async def test_non_string_table_name_recorded(self) -> None:
        """Rejected calls with a missing table name are still audited."""
        sink = RecordingSink()
        audit = AuditLogger([sink])

        entry = await audit.record(AuditAction.INSERT, None, AuditResult.FAILURE)

        assert entry.table_name == ""

    async def test_structlog_sink_accepts_entry(self) -> None:
        audit = AuditLogger([StructlogAuditSink()])

        entry = await audit.record(
            AuditAction.UPDATE, "t_projects", AuditResult.SUCCESS, metadata={"affected_rows": 1}
        )

        assert entry.metadata == {"affected_rows": 1}
