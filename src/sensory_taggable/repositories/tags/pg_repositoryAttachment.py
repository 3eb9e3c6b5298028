# sensory_taggable/repositories/tags/pg_repositoryAttachment.py

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_taggable.db import TagORM
from sensory_taggable.db.base import get_session
from sensory_taggable.exceptions import DatabaseError
from sensory_taggable.taggable import Taggable

logger = logging.getLogger(__name__)


class AttachmentRepository:
    """
    Репозиторий таблицы связей "элемент - тег" одного типа элементов.
    Методы с параметром session работают внутри транзакции вызывающего
    (AsyncUnitOfWork), остальные открывают собственную сессию.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], taggable: Taggable):
        self._session_factory = session_factory
        self._taggable = taggable
        self._model = taggable.attachment_model

    async def get(self, session: AsyncSession, item_id: int, tag_id: int) -> Optional[Any]:
        res = await session.execute(
            select(self._model).where(self._model.item_id == item_id, self._model.tag_id == tag_id)
        )
        return res.scalar_one_or_none()

    async def insert(self, session: AsyncSession, item_id: int, tag_id: int, synced: Dict[str, Any]) -> None:
        session.add(self._model(item_id=item_id, tag_id=tag_id, **synced))
        await session.flush()

    async def remove(self, session: AsyncSession, item_id: int, tag_id: int) -> bool:
        res = await session.execute(
            delete(self._model).where(self._model.item_id == item_id, self._model.tag_id == tag_id)
        )
        return res.rowcount > 0

    async def remove_all(self, session: AsyncSession, item_id: int) -> None:
        await session.execute(delete(self._model).where(self._model.item_id == item_id))

    async def tag_ids(self, session: AsyncSession, item_id: int, live: Optional[bool] = None) -> List[int]:
        """
        id тегов элемента. live=True - только живые строки, live=False - только
        помеченные удалёнными, None - все. Без учёта мягкого удаления все строки живые.
        """
        stmt = select(self._model.tag_id).where(self._model.item_id == item_id)
        condition = self._taggable.live_condition(self._model)
        if condition is not None and live is not None:
            stmt = stmt.where(condition if live else ~condition)
        elif condition is None and live is False:
            return []
        res = await session.execute(stmt.order_by(self._model.tag_id))
        return list(res.scalars().all())

    async def sync(self, session: AsyncSession, item_id: int, synced: Dict[str, Any]) -> None:
        if not synced:
            return
        await session.execute(
            update(self._model).where(self._model.item_id == item_id).values(**synced)
        )

    async def list_tags(self, item_id: int) -> List[TagORM]:
        """Живые теги элемента в порядке привязки."""
        stmt = (
            select(TagORM)
            .join(self._model, self._model.tag_id == TagORM.id)
            .where(self._model.item_id == item_id, TagORM.deleted_at.is_(None))
            .order_by(self._model.attached_at, TagORM.id)
        )
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(stmt)
                return list(res.scalars().all())
            except SQLAlchemyError as e:
                logger.error("list_tags failed for item %s: %s", item_id, e)
                raise DatabaseError(f"Failed to list tags: {e}") from e
