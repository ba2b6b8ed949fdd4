"""
Base Repository

Generic repository with the common operations on service-owned models.
Entity-specific repositories inherit from it:

    class AuditLogRepository(BaseRepository[AuditLog]):
        def __init__(self, session: AsyncSession) -> None:
            super().__init__(AuditLog, session)

What This Provides:
===================
- get(id)    → Fetch single record by UUID
- list()     → List records with pagination and equality filters
- count()    → Count records with equality filters
- create()   → Insert a new record

Transactions:
=============
Repositories never commit. They flush so generated values are available;
the caller owns the session and decides when to commit or roll back.
"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.functions import count

from datenassistent.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic base repository providing common operations.

    Attributes:
        model: The SQLAlchemy model class
        session: The async database session
    """

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            model: SQLAlchemy model class (e.g., AuditLog)
            session: Async database session
        """
        self.model = model
        self.session = session

    # ═══════════════════════════════════════════════════════════════════════════
    # READ OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def get(self, entity_id: UUID) -> ModelType | None:
        """
        Get a single record by its UUID.

        SQL Generated:
            SELECT * FROM t_audit_log WHERE id = '3f2a8b4c-...'
        """
        result = await self.session.execute(
            select(self.model).where(self.model.id == entity_id)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        *,
        offset: int = 0,
        limit: int = 100,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        order_desc: bool = True,
    ) -> list[ModelType]:
        """
        List records with pagination and optional equality filters.

        Args:
            offset: Number of records to skip
            limit: Maximum records to return
            filters: Dict of field=value for WHERE clauses (unknown fields ignored)
            order_by: Field name to order results by
            order_desc: If True, order descending

        Returns:
            List of model instances
        """
        query = select(self.model)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)

        if order_by and hasattr(self.model, order_by):
            order_field = getattr(self.model, order_by)
            query = query.order_by(order_field.desc() if order_desc else order_field)

        query = query.offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, filters: dict[str, Any] | None = None) -> int:
        """
        Count records with optional equality filters.

        SQL Generated:
            SELECT COUNT(id) FROM t_audit_log WHERE result = 'FAILURE'
        """
        query = select(count(self.model.id)).select_from(self.model)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)

        result = await self.session.execute(query)
        return result.scalar() or 0

    # ═══════════════════════════════════════════════════════════════════════════
    # CREATE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Adds the instance to the session and flushes so DB-generated
        values are populated. Does not commit.
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance
