"""Generic async repository shared by the relay's tables.

Rows are never deleted: portal configuration, rotation history, jobs and
determinations are all retained, so the base offers reads and inserts only.
Subclasses bind their model through the generic parameter:

    class SubmissionJobRepository(BaseRepository[SubmissionJob, UUID]):
        ...
"""

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wotc_relay.db.models.base import Base
from wotc_relay.utils.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)
PKType = TypeVar("PKType", bound=UUID | int | str)


class BaseRepository(Generic[ModelType, PKType]):
    """Reads and inserts for one mapped model.

    Attributes:
        model: Mapped class taken from the first generic argument
        db: Session the repository works in
    """

    model: type[ModelType]

    def __init__(self, db: AsyncSession):
        self.db = db

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        for base in getattr(cls, "__orig_bases__", []):
            args = getattr(base, "__args__", None) or ()
            if args and isinstance(args[0], type) and issubclass(args[0], Base):
                cls.model = args[0]
                break

    async def get(self, pk: PKType) -> ModelType | None:
        return await self.db.get(self.model, pk)

    async def get_or_raise(self, pk: PKType) -> ModelType:
        """Load a row or raise NotFoundError naming the model."""
        row = await self.get(pk)
        if row is None:
            raise NotFoundError(self.model.__name__, str(pk))
        return row

    async def list(self, *, limit: int = 100, offset: int = 0) -> list[ModelType]:
        """Page through rows in primary key order."""
        pk_col = self.model.__mapper__.primary_key[0]
        stmt = select(self.model).order_by(pk_col).limit(limit).offset(offset)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create(self, obj: ModelType, *, commit: bool = True) -> ModelType:
        """Insert a row, committing and refreshing unless ``commit`` is False."""
        self.db.add(obj)
        if commit:
            await self.db.commit()
            await self.db.refresh(obj)
        else:
            await self.db.flush()
        return obj
