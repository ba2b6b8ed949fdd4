"""
Base Model Classes

Declarative base for the ORM models this service owns. The business tables
(t_projects, t_employees, ...) are not modelled here: they are reflected at
runtime by the backend adapter. Only service-owned tables such as the audit
trail are declared as models.
"""

from enum import Enum
from typing import Any, ClassVar

from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
PortableJSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Maps Python dict annotations to JSONB on PostgreSQL and JSON on other
    dialects.
    """

    type_annotation_map = {
        dict[str, Any]: PortableJSON,
    }


class EnumValidationMixin:
    """
    Mixin that validates string columns against Enum classes.

    Models define `_enum_fields` mapping field names to Enum classes:

        class AuditLog(Base, EnumValidationMixin):
            _enum_fields: ClassVar[dict[str, type[Enum]]] = {
                "action": AuditAction,
            }

    Validation runs before insert and update, so invalid values never reach
    the database.
    """

    _enum_fields: ClassVar[dict[str, type[Enum]]] = {}

    def validate_enum_fields(self) -> None:
        """
        Validate all enum fields have valid values.

        Raises:
            ValueError: If any enum field has an invalid value
        """
        for field_name, enum_class in self._enum_fields.items():
            value = getattr(self, field_name, None)
            if value is not None:
                valid_values = {e.value for e in enum_class}
                if value not in valid_values:
                    raise ValueError(
                        f"Invalid value '{value}' for field '{field_name}'. "
                        f"Must be one of: {', '.join(sorted(valid_values))}"
                    )

    @classmethod
    def __init_subclass__(cls, **kwargs: Any) -> None:
        """Register validation event listeners when subclass is created."""
        super().__init_subclass__(**kwargs)

        if cls._enum_fields:
            # Signature: (mapper, connection, target)
            @event.listens_for(cls, "before_insert", propagate=True)
            def validate_before_insert(*args: Any) -> None:
                args[2].validate_enum_fields()

            @event.listens_for(cls, "before_update", propagate=True)
            def validate_before_update(*args: Any) -> None:
                args[2].validate_enum_fields()
