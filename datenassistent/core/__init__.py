"""Core utilities module."""

from datenassistent.core.exceptions import (
    AmbiguousFilterError,
    AmbiguousUpdateError,
    DatenassistentException,
    InvalidTableNameError,
    NoRowsFoundError,
    TableNotFoundError,
    ValidationError,
)

__all__ = [
    "DatenassistentException",
    "ValidationError",
    "InvalidTableNameError",
    "AmbiguousFilterError",
    "AmbiguousUpdateError",
    "NoRowsFoundError",
    "TableNotFoundError",
]
