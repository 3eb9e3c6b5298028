# sensory_taggable/repositories/tags/pg_repositoryTag.py

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional
from sqlalchemy import select, update, or_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_taggable.db import TagORM
from sensory_taggable.db.base import get_session
from sensory_taggable.exceptions import DatabaseError, NotFoundError
from sensory_taggable.taggable import Taggable

logger = logging.getLogger(__name__)

TAG_ORDERINGS = {
    "popular": (TagORM.item_count.desc(), TagORM.created_at.desc(), TagORM.id.desc()),
    "newest": (TagORM.created_at.desc(), TagORM.id.desc()),
    "updated": (TagORM.updated_at.desc(), TagORM.id.desc()),
    "alpha": (TagORM.name.asc(),),
}


class TagRepository:
    """
    Репозиторий тегов: поиск по id и имени, создание без гонок,
    атомарное изменение счётчиков и листинги.
    """
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], taggable: Taggable):
        self._session_factory = session_factory
        self._taggable = taggable

    def _live(self, context: Any = None):
        stmt = select(TagORM).where(TagORM.deleted_at.is_(None))
        return self._taggable.apply_query_context(stmt, context)

    async def resolve(self, tag_ids: Iterable[int], names: Iterable[str], context: Any = None) -> List[TagORM]:
        """
        Один запрос на все теги, упомянутые в фильтрах: id из tag_ids ИЛИ имя из names.
        """
        tag_ids, names = list(tag_ids), list(names)
        conditions = []
        if tag_ids:
            conditions.append(TagORM.id.in_(tag_ids))
        if names:
            conditions.append(TagORM.name.in_(names))
        if not conditions:
            return []

        stmt = self._live(context).where(or_(*conditions))
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(stmt)
                return list(res.scalars().all())
            except SQLAlchemyError as e:
                logger.error(f"Tag resolution failed: {e}")
                raise DatabaseError(f"Failed to resolve tags: {e}") from e

    async def get_by_id(self, tag_id: int) -> Optional[TagORM]:
        async with get_session(self._session_factory) as session:
            try:
                return await session.get(TagORM, tag_id)
            except SQLAlchemyError as e:
                logger.error(f"Failed to get tag {tag_id}: {e}")
                raise DatabaseError(f"Failed to get tag: {e}") from e

    async def get_by_ids(self, tag_ids: Iterable[int]) -> List[TagORM]:
        stmt = select(TagORM).where(TagORM.id.in_(list(tag_ids))).order_by(TagORM.id)
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(stmt)
                return list(res.scalars().all())
            except SQLAlchemyError as e:
                logger.error(f"Failed to get tags by ids: {e}")
                raise DatabaseError(f"Failed to get tags: {e}") from e

    async def find_by_name(self, name: str, context: Any = None) -> Optional[TagORM]:
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(self._live(context).where(TagORM.name == name).limit(1))
                return res.scalar_one_or_none()
            except SQLAlchemyError as e:
                logger.error(f"Failed to find tag '{name}': {e}")
                raise DatabaseError(f"Failed to find tag: {e}") from e

    async def find_or_create(self, name: str, context: Any = None) -> TagORM:
        """
        Находит живой тег по имени или создаёт его с item_count = 0.
        Вставка идёт в отдельной транзакции; нарушение уникальности имени
        значит, что имя уже занято - берём тег-владелец имени.
        """
        existing = await self.find_by_name(name, context)
        if existing:
            return existing

        tag = TagORM(name=name, item_count=0)
        self._taggable.apply_model_context(tag, context)

        async with get_session(self._session_factory) as session:
            try:
                session.add(tag)
                await session.commit()
                await session.refresh(tag)
                logger.info(f"Created tag '{name}' with id {tag.id}")
                return tag
            except IntegrityError:
                await session.rollback()
                logger.info(f"Tag name '{name}' is already taken, re-reading its holder")
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to create tag '{name}': {e}")
                raise DatabaseError(f"Failed to create tag: {e}") from e

        return await self._claim_name(name)

    async def _claim_name(self, name: str) -> TagORM:
        """
        Читает владельца имени мимо фильтров удаления и контекста.
        Мягко удалённый владелец восстанавливается.
        """
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(select(TagORM).where(TagORM.name == name).limit(1))
                tag = res.scalar_one_or_none()
                if tag is None:
                    raise DatabaseError(f"Tag '{name}' violated uniqueness but cannot be read back")
                if tag.deleted_at is not None:
                    tag.deleted_at = None
                    await session.commit()
                    await session.refresh(tag)
                    logger.info(f"Restored soft-deleted tag '{name}' (id {tag.id}) on re-creation")
                return tag
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to re-read tag '{name}': {e}")
                raise DatabaseError(f"Failed to re-read tag: {e}") from e

    async def find_many_or_create(self, names: Iterable[str], context: Any = None) -> List[TagORM]:
        tags: List[TagORM] = []
        seen: set[str] = set()
        for name in names:
            if not name or name in seen:
                continue
            seen.add(name)
            tags.append(await self.find_or_create(name, context))
        return tags

    @staticmethod
    async def increment(session: AsyncSession, tag_ids: Iterable[int]) -> None:
        """Атомарно +1 к item_count в рамках транзакции вызывающего."""
        tag_ids = list(tag_ids)
        if not tag_ids:
            return
        await session.execute(
            update(TagORM)
            .where(TagORM.id.in_(tag_ids))
            .values(item_count=TagORM.item_count + 1)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def decrement(session: AsyncSession, tag_ids: Iterable[int]) -> None:
        """
        Атомарно -1 к item_count. Счётчик не уходит ниже нуля; упор в ноль
        означает расхождение счётчика с привязками и логируется.
        """
        tag_ids = list(tag_ids)
        if not tag_ids:
            return
        res = await session.execute(
            update(TagORM)
            .where(TagORM.id.in_(tag_ids), TagORM.item_count > 0)
            .values(item_count=TagORM.item_count - 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount < len(tag_ids):
            logger.warning(
                "item_count is already zero for %d of tags %s, decrement skipped",
                len(tag_ids) - res.rowcount, tag_ids,
            )

    async def list_tags(
        self,
        order: str = "popular",
        limit: int = 50,
        offset: int = 0,
        context: Any = None,
        min_items: int = 0,
    ) -> List[TagORM]:
        """Листинг живых тегов: popular / newest / updated / alpha."""
        if order not in TAG_ORDERINGS:
            raise ValueError(f"Unknown tag ordering '{order}', expected one of {sorted(TAG_ORDERINGS)}")
        stmt = self._live(context)
        if min_items:
            stmt = stmt.where(TagORM.item_count >= min_items)
        stmt = stmt.order_by(*TAG_ORDERINGS[order]).limit(limit).offset(offset)
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(stmt)
                return list(res.scalars().all())
            except SQLAlchemyError as e:
                logger.error(f"Failed to list tags ({order}): {e}")
                raise DatabaseError(f"Failed to list tags: {e}") from e

    async def count_tags(self, context: Any = None) -> int:
        stmt = select(func.count()).select_from(self._live(context).subquery())
        async with get_session(self._session_factory) as session:
            try:
                return (await session.execute(stmt)).scalar_one()
            except SQLAlchemyError as e:
                logger.error(f"Failed to count tags: {e}")
                raise DatabaseError(f"Failed to count tags: {e}") from e

    async def soft_delete(self, tag_id: int) -> None:
        """Помечает тег удалённым. id сохраняется, из поиска по имени тег пропадает."""
        await self._set_deleted_at(tag_id, datetime.now(timezone.utc))
        logger.info(f"Soft-deleted tag {tag_id}")

    async def restore(self, tag_id: int) -> None:
        await self._set_deleted_at(tag_id, None)
        logger.info(f"Restored tag {tag_id}")

    async def _set_deleted_at(self, tag_id: int, value: Optional[datetime]) -> None:
        stmt = update(TagORM).where(TagORM.id == tag_id).values(deleted_at=value)
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(stmt)
                if res.rowcount == 0:
                    await session.rollback()
                    raise NotFoundError(f"Tag with id {tag_id} not found.")
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Failed to update deleted_at for tag {tag_id}: {e}")
                raise DatabaseError(f"Failed to update tag: {e}") from e
