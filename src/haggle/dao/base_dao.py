from typing import Type, TypeVar, Generic, Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import inspect, and_, func, select, update
from sqlalchemy.sql.selectable import Select
from haggle.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)

class BaseDao(Generic[ModelType]):
    def __init__(self, model_class: Type[ModelType], db_session: AsyncSession):
        self.model: Type[ModelType] = model_class
        self.db_session: AsyncSession = db_session
        primary_keys = inspect(model_class).primary_key
        if not primary_keys:
            raise ValueError(f"Model {model_class.__name__} does not have a primary key.")
        self.pk: str = primary_keys[0].name

    # ==============================================================================
    # 1. Object methods
    #    - inputs and outputs are ORM instances
    # ==============================================================================

    async def get_list(
        self,
        where: Optional[dict | list] = None,
        order: Optional[list] = None,
        page: int = 0,
        limit: int = 0,
        for_update: bool = False,
        populate_existing: bool = False
    ) -> list[ModelType]:
        stmt = self._quick_query(where=where, order=order, page=page, limit=limit)
        if for_update:
            stmt = stmt.with_for_update(of=self.model)
        if populate_existing:
            stmt = stmt.execution_options(populate_existing=True)
        executed = await self.db_session.execute(stmt)
        return list(executed.scalars().unique().all())

    async def get_one(
        self,
        where: Optional[dict | list] = None,
        order: Optional[list] = None,
        for_update: bool = False
    ) -> Optional[ModelType]:
        stmt = self._quick_query(where=where, order=order)
        if for_update:
            stmt = stmt.with_for_update(of=self.model)
        executed = await self.db_session.execute(stmt)
        return executed.scalars().first()

    async def get_by_pk(self, pk_value: Any) -> Optional[ModelType]:
        stmt = self._quick_query(where={self.pk: pk_value})
        executed = await self.db_session.execute(stmt)
        return executed.scalars().first()

    async def count(self, where: Optional[dict | list] = None) -> int:
        stmt = select(func.count()).select_from(self.model)
        if where is not None:
            stmt = stmt.where(*self._where_format(where))
        executed = await self.db_session.execute(stmt)
        return executed.scalar() or 0

    async def add(self, instance: ModelType, auto_flush: bool = True) -> ModelType:
        self.db_session.add(instance)
        if auto_flush:
            await self.db_session.flush()
            await self.db_session.refresh(instance)
        return instance

    # ==============================================================================
    # 2. Bulk methods
    # ==============================================================================

    async def update_where(self, where: dict | list, values: dict) -> int:
        if not where or not values:
            return 0
        conditions = self._where_format(where)
        stmt = update(self.model).where(*conditions).values(values).execution_options(synchronize_session="fetch")
        executed = await self.db_session.execute(stmt)
        return executed.rowcount

    # ==============================================================================
    # 3. Query building helpers
    # ==============================================================================

    def _quick_query(
        self,
        where: Optional[dict | list] = None,
        order: Optional[list] = None,
        page: int = 0,
        limit: int = 0
    ) -> Select:
        stmt = select(self.model)

        if where is not None:
            stmt = stmt.filter(*self._where_format(where))

        if order is not None:
            stmt = stmt.order_by(*order)

        if page > 0 and limit > 0:
            stmt = stmt.limit(limit).offset((page - 1) * limit)

        return stmt

    def _where_format(self, conditions: list | dict) -> list:
        """Accepts {"field": value} (equality) or a list of SQL expressions."""
        if not conditions:
            return []

        if isinstance(conditions, dict):
            processed_conditions = [getattr(self.model, field) == value for field, value in conditions.items()]
        else:
            processed_conditions = list(conditions)
        if len(processed_conditions) > 1:
            processed_conditions = [and_(*processed_conditions)]
        return processed_conditions
