"""
User-Facing Error Messages

Translates raw backend errors into short German messages the chat layer can
show verbatim. Categories are checked in a fixed order and the first match
wins:

    connection → timeout → permission → table not found → constraint
      → rate limit → service unavailable → operation default

Raw driver text never reaches the user except when running in debug mode
and no category applies.
"""

from typing import Any, Optional

from datenassistent.config.constants import (
    RAW_ERROR_PREVIEW_LENGTH,
    AuditAction,
    ErrorCategory,
)
from datenassistent.core.utils import truncate_string
from datenassistent.data_access.retry import error_code, error_text

UNKNOWN_ERROR_MESSAGE = "Ein unbekannter Fehler ist aufgetreten."
GENERIC_ERROR_MESSAGE = "Ein Fehler ist aufgetreten. Bitte versuche es erneut."

_CONNECTION_MARKERS = ("connection", "network", "econnreset", "econnrefused", "enotfound")
_TIMEOUT_MARKERS = ("timeout", "timed out")
_PERMISSION_MARKERS = ("permission denied", "access denied", "unauthorized")
_TABLE_NOT_FOUND_MARKERS = ("does not exist", "nicht gefunden", "no such table")
_CONSTRAINT_MARKERS = ("violates", "constraint", "unique", "duplicate")
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
_UNAVAILABLE_MARKERS = ("service unavailable", "bad gateway", "gateway timeout")

# SQLSTATE 42P01 undefined_table, PGRST116 from PostgREST
_TABLE_NOT_FOUND_CODES = frozenset({"42P01", "PGRST116"})


def _contains(text: str, markers: tuple[str, ...]) -> bool:
    return any(marker in text for marker in markers)


def _describe(error: Any) -> tuple[str, str]:
    if isinstance(error, BaseException):
        return error_text(error), error_code(error)
    return str(error), ""


def classify_error(error: Any) -> ErrorCategory:
    """Assign an error to the first matching category."""
    if not error:
        return ErrorCategory.UNKNOWN

    message, code = _describe(error)
    lowered = message.lower()

    if _contains(lowered, _CONNECTION_MARKERS):
        return ErrorCategory.CONNECTION
    if _contains(lowered, _TIMEOUT_MARKERS):
        return ErrorCategory.TIMEOUT
    if _contains(lowered, _PERMISSION_MARKERS):
        return ErrorCategory.PERMISSION
    if code in _TABLE_NOT_FOUND_CODES or _contains(lowered, _TABLE_NOT_FOUND_MARKERS):
        return ErrorCategory.TABLE_NOT_FOUND
    if _contains(lowered, _CONSTRAINT_MARKERS):
        if "unique" in lowered or "duplicate" in lowered:
            return ErrorCategory.UNIQUE_VIOLATION
        if "foreign key" in lowered:
            return ErrorCategory.FOREIGN_KEY_VIOLATION
        if "not null" in lowered or "null constraint" in lowered:
            return ErrorCategory.NOT_NULL_VIOLATION
        return ErrorCategory.CONSTRAINT_VIOLATION
    if _contains(lowered, _RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMITED
    if _contains(lowered, _UNAVAILABLE_MARKERS):
        return ErrorCategory.SERVICE_UNAVAILABLE
    return ErrorCategory.OPERATION_DEFAULT


def _operation_message(operation: AuditAction, lowered: str) -> Optional[str]:
    if operation is AuditAction.INSERT:
        if "duplicate" in lowered or "already exists" in lowered:
            return "Ein Eintrag mit diesen Daten existiert bereits."
        return "Der Eintrag konnte nicht erstellt werden. Bitte überprüfe deine Eingaben."
    if operation is AuditAction.UPDATE:
        if "not found" in lowered or "nicht gefunden" in lowered:
            return "Der zu aktualisierende Eintrag wurde nicht gefunden."
        return "Der Eintrag konnte nicht aktualisiert werden. Bitte überprüfe deine Eingaben."
    if operation is AuditAction.DELETE:
        if "not found" in lowered or "nicht gefunden" in lowered:
            return "Der zu löschende Eintrag wurde nicht gefunden."
        if "foreign key" in lowered or "referenced" in lowered:
            return (
                "Dieser Eintrag kann nicht gelöscht werden, da er von anderen "
                "Einträgen referenziert wird."
            )
        return "Der Eintrag konnte nicht gelöscht werden."
    if operation is AuditAction.QUERY:
        return "Die Datenbankabfrage konnte nicht ausgeführt werden. Bitte versuche es erneut."
    return None


def get_user_friendly_error_message(
    error: Any,
    operation: AuditAction | str,
    table_name: Optional[str] = None,
    debug: bool = False,
) -> str:
    """Translate a backend error into a German user-facing message.

    Args:
        error: Exception or raw error text
        operation: INSERT, UPDATE, DELETE or QUERY
        table_name: Table involved, used in permission/not-found messages
        debug: Allow the truncated raw message as a last resort

    Returns:
        Message suitable for direct display
    """
    if not error:
        return UNKNOWN_ERROR_MESSAGE

    message, _ = _describe(error)
    lowered = message.lower()
    category = classify_error(error)

    if category is ErrorCategory.CONNECTION:
        return "Verbindungsfehler zur Datenbank. Bitte versuche es erneut."
    if category is ErrorCategory.TIMEOUT:
        return "Die Anfrage hat zu lange gedauert. Bitte versuche es erneut."
    if category is ErrorCategory.PERMISSION:
        if table_name:
            return (
                f'Zugriff verweigert auf Tabelle "{table_name}". '
                "Bitte überprüfe deine Berechtigungen."
            )
        return "Zugriff verweigert. Bitte überprüfe deine Berechtigungen."
    if category is ErrorCategory.TABLE_NOT_FOUND:
        if table_name:
            return f'Tabelle "{table_name}" existiert nicht oder ist nicht zugänglich.'
        return "Die angeforderte Tabelle existiert nicht."
    if category is ErrorCategory.UNIQUE_VIOLATION:
        return "Ein Eintrag mit diesen Daten existiert bereits. Bitte verwende andere Werte."
    if category is ErrorCategory.FOREIGN_KEY_VIOLATION:
        return (
            "Der Eintrag verweist auf einen nicht existierenden Datensatz. "
            "Bitte überprüfe die Referenzen."
        )
    if category is ErrorCategory.NOT_NULL_VIOLATION:
        return "Ein erforderliches Feld fehlt. Bitte fülle alle Pflichtfelder aus."
    if category is ErrorCategory.CONSTRAINT_VIOLATION:
        return "Die Daten verletzen eine Datenbankregel. Bitte überprüfe deine Eingaben."
    if category is ErrorCategory.RATE_LIMITED:
        return "Zu viele Anfragen. Bitte warte einen Moment und versuche es erneut."
    if category is ErrorCategory.SERVICE_UNAVAILABLE:
        return (
            "Der Service ist vorübergehend nicht verfügbar. "
            "Bitte versuche es später erneut."
        )

    try:
        action = AuditAction(operation)
    except ValueError:
        action = None
    if action is not None:
        operation_message = _operation_message(action, lowered)
        if operation_message:
            return operation_message

    if debug:
        return truncate_string(message, RAW_ERROR_PREVIEW_LENGTH)
    return GENERIC_ERROR_MESSAGE
