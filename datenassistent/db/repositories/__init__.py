"""Database repositories for service-owned tables."""

from datenassistent.db.repositories.audit_log_repository import AuditLogRepository
from datenassistent.db.repositories.base import BaseRepository

__all__ = [
    "BaseRepository",
    "AuditLogRepository",
]
