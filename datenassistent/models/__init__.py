"""
Datenassistent SQLAlchemy Models

Only tables owned by this service are modelled here. Business tables are
reflected at runtime (see datenassistent.data_access.backend).

Models Overview:
================
- Base: Declarative base with a portable JSON type mapping
- AuditLog: Record of every audited table operation (t_audit_log)
"""

from datenassistent.models.audit_log import AuditLog
from datenassistent.models.base import Base, EnumValidationMixin

__all__ = [
    "Base",
    "EnumValidationMixin",
    "AuditLog",
]
