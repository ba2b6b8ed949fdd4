"""
Custom Exceptions

Application-specific exceptions. Every exception carries a German,
user-facing message (rendered verbatim by the chat layer), a stable
error code and an HTTP status code for the API surface.

The table-access core never lets these escape: they are caught in
TableAccessService and surfaced as the `error` string of an
OperationResult.
"""

from typing import Any, Optional


class DatenassistentException(Exception):
    """Base exception for all Datenassistent errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or "INTERNAL_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(DatenassistentException):
    """Input rejected before any backend call."""

    def __init__(
        self,
        message: str = "Die Eingabe ist ungültig.",
        error_code: str = "VALIDATION_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code=error_code,
            details=details,
        )


# =============================================================================
# Validation Layer
# =============================================================================


class InvalidTableNameError(ValidationError):
    """Table name is empty, malformed or not allow-listed."""

    def __init__(self, table_name: Any, reason: str = "not_allowed") -> None:
        if not table_name or not isinstance(table_name, str):
            message = "Der Tabellenname muss angegeben werden."
        elif reason == "format":
            message = f'Ungültiger Tabellenname: "{table_name}".'
        else:
            message = f'Die Tabelle "{table_name}" ist für diese Aktion nicht freigegeben.'
        super().__init__(
            message=message,
            error_code="INVALID_TABLE_NAME",
            details={"table_name": table_name, "reason": reason},
        )


class InvalidKeyError(ValidationError):
    """A filter or value key is not a plain column identifier."""

    def __init__(self, key: Any, kind: str = "column") -> None:
        label = "Filterschlüssel" if kind == "filter" else "Spaltenname"
        super().__init__(
            message=f'Ungültiger {label}: "{key}".',
            error_code="INVALID_KEY",
            details={"key": str(key), "kind": kind},
        )


class ValueTooLongError(ValidationError):
    """A string value exceeds the maximum length."""

    def __init__(self, length: int, max_length: int) -> None:
        super().__init__(
            message=(
                f"Ein Textwert ist zu lang ({length} Zeichen, "
                f"maximal {max_length} erlaubt)."
            ),
            error_code="VALUE_TOO_LONG",
            details={"length": length, "max_length": max_length},
        )


class InvalidNumberError(ValidationError):
    """A numeric value is NaN or infinite."""

    def __init__(self, value: Any) -> None:
        super().__init__(
            message="Ungültiger Zahlenwert (nicht endlich).",
            error_code="INVALID_NUMBER",
            details={"value": str(value)},
        )


class ArrayTooLongError(ValidationError):
    """A list value exceeds the maximum number of elements."""

    def __init__(self, length: int, max_length: int) -> None:
        super().__init__(
            message=(
                f"Eine Liste enthält zu viele Elemente ({length}, "
                f"maximal {max_length} erlaubt)."
            ),
            error_code="ARRAY_TOO_LONG",
            details={"length": length, "max_length": max_length},
        )


class TooManyKeysError(ValidationError):
    """Too many filters or columns in a single call."""

    def __init__(self, count: int, max_count: int, kind: str = "column") -> None:
        label = "Filter" if kind == "filter" else "Spalten"
        super().__init__(
            message=f"Zu viele {label} ({count}, maximal {max_count} erlaubt).",
            error_code="TOO_MANY_KEYS",
            details={"count": count, "max_count": max_count, "kind": kind},
        )


class InvalidFilterTypeError(ValidationError):
    """A `{type, value}` filter uses an unknown comparison type."""

    def __init__(self, filter_type: Any, column: Optional[str] = None) -> None:
        super().__init__(
            message=f'Ungültiger Filtertyp: "{filter_type}".',
            error_code="INVALID_FILTER_TYPE",
            details={"filter_type": str(filter_type), "column": column},
        )


class InvalidLimitError(ValidationError):
    """Row limit outside the permitted range."""

    def __init__(self, limit: Any, maximum: int) -> None:
        super().__init__(
            message=f"Das Limit muss zwischen 1 und {maximum} liegen (erhalten: {limit}).",
            error_code="INVALID_LIMIT",
            details={"limit": str(limit), "maximum": maximum},
        )


class InvalidJoinError(ValidationError):
    """A relationship-join fragment does not match the allowed syntax."""

    def __init__(self, join: Any, reason: Optional[str] = None) -> None:
        message = f'Ungültige Verknüpfung: "{join}".'
        if reason:
            message = f"{message} {reason}"
        super().__init__(
            message=message,
            error_code="INVALID_JOIN",
            details={"join": str(join)},
        )


class UnknownColumnError(ValidationError):
    """A referenced column does not exist on the table."""

    def __init__(self, column: str, table_name: str) -> None:
        super().__init__(
            message=f'Die Spalte "{column}" existiert nicht in Tabelle "{table_name}".',
            error_code="UNKNOWN_COLUMN",
            details={"column": column, "table_name": table_name},
        )


class InvalidAggregationError(ValidationError):
    """Unsupported aggregation or missing aggregation column."""

    def __init__(self, message: str, aggregation: Any = None) -> None:
        super().__init__(
            message=message,
            error_code="INVALID_AGGREGATION",
            details={"aggregation": str(aggregation)},
        )


# =============================================================================
# Cardinality gate
# =============================================================================


class AmbiguousFilterError(ValidationError):
    """Filters do not include a uniquely identifying column."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message=message
            or (
                "Die Filter müssen mindestens eine eindeutige Kennung enthalten "
                "(z. B. project_id, employee_id, project_code oder name)."
            ),
            error_code="AMBIGUOUS_FILTER",
        )


class AmbiguousUpdateError(DatenassistentException):
    """Filters match more than one row while a single row is required."""

    def __init__(self, count: int, action: str = "UPDATE") -> None:
        verb = "gelöscht" if action == "DELETE" else "aktualisiert"
        super().__init__(
            message=(
                f"Mehrere Zeilen ({count}) passen zu diesen Filtern. "
                f"Es wurde nichts {verb}. Bitte gib eine eindeutige Kennung an."
            ),
            status_code=409,
            error_code="AMBIGUOUS_UPDATE",
            details={"count": count, "action": action},
        )
        self.count = count


class NoRowsFoundError(DatenassistentException):
    """Filters match no rows."""

    def __init__(self, table_name: str, action: str = "UPDATE") -> None:
        target = "zu löschende" if action == "DELETE" else "zu aktualisierende"
        super().__init__(
            message=(
                f'Der {target} Eintrag in Tabelle "{table_name}" wurde nicht gefunden.'
            ),
            status_code=404,
            error_code="NO_ROWS_FOUND",
            details={"table_name": table_name, "action": action},
        )


# =============================================================================
# Backend-facing
# =============================================================================


class TableNotFoundError(DatenassistentException):
    """The table does not exist in the connected database."""

    def __init__(self, table_name: str) -> None:
        super().__init__(
            message=f'Tabelle "{table_name}" existiert nicht oder ist nicht zugänglich.',
            status_code=404,
            error_code="TABLE_NOT_FOUND",
            details={"table_name": table_name},
        )


class NoValidNumericValuesError(DatenassistentException):
    """In-memory aggregation found no parseable numbers."""

    def __init__(self, column: str) -> None:
        super().__init__(
            message=f'Die Spalte "{column}" enthält keine gültigen Zahlenwerte.',
            status_code=422,
            error_code="NO_VALID_NUMERIC_VALUES",
            details={"column": column},
        )


# =============================================================================
# Tool dispatch
# =============================================================================


class UnknownToolError(DatenassistentException):
    """Tool name is not one of the declared tools."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            message=f"Unbekannte Funktion: {tool_name}",
            status_code=404,
            error_code="UNKNOWN_TOOL",
            details={"tool_name": tool_name},
        )


class InvalidToolArgumentsError(ValidationError):
    """Tool arguments could not be parsed."""

    def __init__(self, tool_name: str, reason: str) -> None:
        super().__init__(
            message=f"Ungültige Argumente für {tool_name}: {reason}",
            error_code="INVALID_TOOL_ARGUMENTS",
            details={"tool_name": tool_name},
        )


# =============================================================================
# Tool-call limits
# =============================================================================


class RateLimitExceededError(DatenassistentException):
    """Client sent more tool calls than its window allows."""

    def __init__(self, limit: int, window: str, retry_after_seconds: int) -> None:
        super().__init__(
            message=(
                "Zu viele Anfragen. Bitte warte einen Moment und versuche es "
                f"in {retry_after_seconds} Sekunden erneut."
            ),
            status_code=429,
            error_code="RATE_LIMITED",
            details={
                "limit": limit,
                "window": window,
                "retry_after_seconds": retry_after_seconds,
            },
        )
        self.retry_after_seconds = retry_after_seconds


class ConcurrencyLimitExceededError(DatenassistentException):
    """Client already has the maximum number of tool calls in flight."""

    def __init__(self, limit: int) -> None:
        super().__init__(
            message=(
                "Es laufen bereits zu viele Anfragen gleichzeitig. "
                "Bitte warte, bis eine davon abgeschlossen ist."
            ),
            status_code=429,
            error_code="TOO_MANY_CONCURRENT_REQUESTS",
            details={"limit": limit},
        )
