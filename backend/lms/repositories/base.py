"""
Generic repository with the CRUD operations shared by all models.

Create/update helpers only flush: the service that owns the unit of work
decides when to commit.
"""

from typing import Any, Generic, Type, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms.db.session import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository.

    Provides:
    - get_by_id: Fetch by primary key
    - get_all: Paginated listing
    - add: Stage a new row
    - update: Set attributes on a row
    - count: Count rows
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    async def get_by_id(self, id: UUID) -> ModelType | None:
        """Fetch a row by id."""
        result = await self.db.execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ModelType]:
        """List rows, newest first."""
        result = await self.db.execute(
            select(self.model)
            .offset(skip)
            .limit(limit)
            .order_by(self.model.created_at.desc())
        )
        return list(result.scalars().all())

    async def add(self, **kwargs: Any) -> ModelType:
        """Stage a new row and flush it so defaults and the id are populated."""
        instance = self.model(**kwargs)
        self.db.add(instance)
        await self.db.flush()
        return instance

    async def update(
        self,
        instance: ModelType,
        **kwargs: Any,
    ) -> ModelType:
        """Set the non-None attributes on an existing row and flush."""
        for key, value in kwargs.items():
            if value is not None:
                setattr(instance, key, value)
        await self.db.flush()
        return instance

    async def count(self) -> int:
        """Count all rows."""
        result = await self.db.execute(
            select(func.count(self.model.id))
        )
        return result.scalar_one()
