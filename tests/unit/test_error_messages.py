"""
Error Message Tests

Unit tests for backend error classification and the German messages
shown to the user.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from datenassistent.config.constants import AuditAction, ErrorCategory
from datenassistent.data_access.error_messages import (
    GENERIC_ERROR_MESSAGE,
    UNKNOWN_ERROR_MESSAGE,
    classify_error,
    get_user_friendly_error_message,
)


class PostgrestError(Exception):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        ("error", "category"),
        [
            (Exception("ECONNREFUSED 127.0.0.1:5432"), ErrorCategory.CONNECTION),
            (Exception("statement timeout"), ErrorCategory.TIMEOUT),
            (Exception("permission denied for table t_projects"), ErrorCategory.PERMISSION),
            (Exception('relation "t_x" does not exist'), ErrorCategory.TABLE_NOT_FOUND),
            (PostgrestError("no rows", "PGRST116"), ErrorCategory.TABLE_NOT_FOUND),
            (
                Exception("duplicate key value violates unique constraint"),
                ErrorCategory.UNIQUE_VIOLATION,
            ),
            (
                Exception("insert violates foreign key constraint"),
                ErrorCategory.FOREIGN_KEY_VIOLATION,
            ),
            (Exception("NOT NULL constraint failed: t.name"), ErrorCategory.NOT_NULL_VIOLATION),
            (Exception("new row violates check constraint"), ErrorCategory.CONSTRAINT_VIOLATION),
            (Exception("rate limit exceeded"), ErrorCategory.RATE_LIMITED),
            (Exception("502 Bad Gateway"), ErrorCategory.SERVICE_UNAVAILABLE),
            (Exception("something odd"), ErrorCategory.OPERATION_DEFAULT),
        ],
    )
    def test_categories(self, error, category) -> None:
        assert classify_error(error) is category

    def test_first_matching_category_wins(self) -> None:
        """Connection is checked before timeout."""
        assert classify_error(Exception("connection timeout")) is ErrorCategory.CONNECTION

    def test_sqlite_unique_violation(self) -> None:
        error = IntegrityError(
            "INSERT", {}, Exception("UNIQUE constraint failed: t_employees.employee_code")
        )

        assert classify_error(error) is ErrorCategory.UNIQUE_VIOLATION

    def test_missing_error(self) -> None:
        assert classify_error(None) is ErrorCategory.UNKNOWN


class TestUserFriendlyMessage:
    """Tests for get_user_friendly_error_message."""

    def test_missing_error(self) -> None:
        assert get_user_friendly_error_message(None, AuditAction.QUERY) == UNKNOWN_ERROR_MESSAGE

    def test_connection_message(self) -> None:
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))

        message = get_user_friendly_error_message(error, AuditAction.QUERY)

        assert message == "Verbindungsfehler zur Datenbank. Bitte versuche es erneut."

    def test_permission_message_names_table(self) -> None:
        message = get_user_friendly_error_message(
            Exception("permission denied"), AuditAction.UPDATE, "t_projects"
        )

        assert message.startswith('Zugriff verweigert auf Tabelle "t_projects"')

    def test_table_not_found_without_table(self) -> None:
        message = get_user_friendly_error_message(
            Exception("does not exist"), AuditAction.QUERY
        )

        assert message == "Die angeforderte Tabelle existiert nicht."

    @pytest.mark.parametrize(
        ("operation", "text", "expected"),
        [
            (AuditAction.INSERT, "something odd", "Der Eintrag konnte nicht erstellt werden."),
            (AuditAction.UPDATE, "row not found", "Der zu aktualisierende Eintrag wurde nicht gefunden."),
            (AuditAction.DELETE, "row not found", "Der zu löschende Eintrag wurde nicht gefunden."),
            (AuditAction.DELETE, "still referenced", "da er von anderen Einträgen referenziert wird"),
            (AuditAction.QUERY, "something odd", "Die Datenbankabfrage konnte nicht ausgeführt werden."),
        ],
    )
    def test_operation_defaults(self, operation, text, expected) -> None:
        message = get_user_friendly_error_message(Exception(text), operation)

        assert expected in message

    def test_operation_accepts_plain_string(self) -> None:
        message = get_user_friendly_error_message(Exception("odd"), "DELETE")

        assert message == "Der Eintrag konnte nicht gelöscht werden."

    def test_raw_text_only_in_debug(self) -> None:
        """Unknown operations fall back to the raw text in debug, generic otherwise."""
        error = Exception("internal detail " + "x" * 300)

        production = get_user_friendly_error_message(error, "MERGE")
        debug = get_user_friendly_error_message(error, "MERGE", debug=True)

        assert production == GENERIC_ERROR_MESSAGE
        assert debug.startswith("internal detail")
        assert len(debug) == 203
