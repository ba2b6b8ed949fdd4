"""
Database Module

Database connectivity and session management.

Components:
===========
- session.py: Engine, session factory, and lifecycle functions
- repositories/: Repositories for service-owned tables (audit log)

Usage in FastAPI:
=================
    from fastapi import Depends
    from datenassistent.db import get_db
    from datenassistent.db.repositories import AuditLogRepository

    @router.get("/audit/{table_name}")
    async def recent(table_name: str, db: AsyncSession = Depends(get_db)):
        return await AuditLogRepository(db).list_for_table(table_name)
"""

from datenassistent.db.session import (
    AsyncSessionLocal,
    check_db_connection,
    close_db,
    engine,
    get_db,
    init_db,
)

__all__ = [
    "get_db",  # FastAPI dependency for getting a database session
    "init_db",  # Initialize database on app startup
    "close_db",  # Close database on app shutdown
    "check_db_connection",  # Health check ping
    "engine",  # Shared async engine
    "AsyncSessionLocal",  # Session factory for manual session creation
]
