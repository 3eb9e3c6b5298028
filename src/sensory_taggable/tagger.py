# sensory_taggable/tagger.py

import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_taggable.db import AsyncUnitOfWork, TagORM
from sensory_taggable.db.base import get_session
from sensory_taggable.exceptions import DatabaseError
from sensory_taggable.models.tag import ItemSnapshot
from sensory_taggable.repositories import AttachmentRepository, TagRepository
from sensory_taggable.taggable import Taggable

logger = logging.getLogger(__name__)


class Tagger:
    """
    Поддерживает item_count тегов в соответствии с привязками.

    Хранилище элементов вызывает точки входа явно, передавая снимок элемента:
    attach/detach при изменении набора тегов, sync при сохранении,
    handle_deleted/handle_restored при удалении и восстановлении.
    Каждая операция - одна транзакция вместе с изменением счётчиков.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        taggable: Taggable,
        tag_repo: TagRepository,
        attachment_repo: AttachmentRepository,
    ):
        self._session_factory = session_factory
        self._taggable = taggable
        self._tags = tag_repo
        self._attachments = attachment_repo

    # --- привязка и отвязка ---

    async def attach(self, item: ItemSnapshot, tag_id: int) -> bool:
        """
        Привязывает тег к элементу. Повторная привязка - no-op.
        Возвращает True, если строка связи была создана.
        """
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                if await self._attachments.get(uow.session, item.item_id, tag_id) is not None:
                    return False
                await self._attachments.insert(
                    uow.session, item.item_id, tag_id, self._taggable.synced_values(item)
                )
                # Строка удалённого мягко элемента в счётчик не входит.
                if not self._taggable.is_soft_deleted(item):
                    await self._tags.increment(uow.session, [tag_id])
        except IntegrityError as e:
            # Ту же пару вставили параллельно; транзакция откатилась вместе со счётчиком.
            if await self._is_attached(item.item_id, tag_id):
                logger.info(f"Tag {tag_id} is already attached to item {item.item_id}")
                return False
            logger.error(f"Failed to attach tag {tag_id} to item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to attach tag: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to attach tag {tag_id} to item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to attach tag: {e}") from e

        logger.debug(f"Attached tag {tag_id} to item {item.item_id}")
        return True

    async def detach(self, item: ItemSnapshot, tag_id: int) -> bool:
        """Отвязывает тег. Отсутствующая связь - no-op. True, если строка удалена."""
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                row = await self._attachments.get(uow.session, item.item_id, tag_id)
                if row is None:
                    return False
                live = self._row_is_live(row)
                if not await self._attachments.remove(uow.session, item.item_id, tag_id):
                    return False
                if live:
                    await self._tags.decrement(uow.session, [tag_id])
        except SQLAlchemyError as e:
            logger.error(f"Failed to detach tag {tag_id} from item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to detach tag: {e}") from e

        logger.debug(f"Detached tag {tag_id} from item {item.item_id}")
        return True

    async def detach_all(self, item: ItemSnapshot) -> List[int]:
        """Отвязывает все теги элемента; счётчики уменьшаются только для живых строк."""
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                live_ids = await self._attachments.tag_ids(uow.session, item.item_id, live=True)
                all_ids = await self._attachments.tag_ids(uow.session, item.item_id)
                await self._attachments.remove_all(uow.session, item.item_id)
                await self._tags.decrement(uow.session, live_ids)
        except SQLAlchemyError as e:
            logger.error(f"Failed to detach tags from item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to detach tags: {e}") from e
        return all_ids

    # --- события жизненного цикла элемента ---

    async def sync(self, item: ItemSnapshot) -> None:
        """Переписывает синхронизируемые атрибуты во всех строках связи элемента."""
        synced = self._taggable.synced_values(item)
        if not synced:
            return
        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                await self._attachments.sync(uow.session, item.item_id, synced)
        except SQLAlchemyError as e:
            logger.error(f"Failed to sync attributes for item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to sync tagged attributes: {e}") from e

    async def handle_deleted(self, item: ItemSnapshot) -> None:
        """
        Элемент удалён. Без учёта мягкого удаления - отвязываем все теги.
        При мягком удалении строки связи остаются (их можно восстановить):
        синхронизируем атрибуты и уменьшаем счётчики тегов, чьи строки были живыми.
        """
        if not self._taggable.is_soft_deleted(item):
            await self.detach_all(item)
            return

        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                live_ids = await self._attachments.tag_ids(uow.session, item.item_id, live=True)
                await self._attachments.sync(uow.session, item.item_id, self._taggable.synced_values(item))
                await self._tags.decrement(uow.session, live_ids)
        except SQLAlchemyError as e:
            logger.error(f"Failed to handle soft delete of item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to handle deleted item: {e}") from e
        logger.info(f"Item {item.item_id} soft-deleted, {len(live_ids)} tag counters decremented")

    async def handle_restored(self, item: ItemSnapshot) -> None:
        """Элемент восстановлен после мягкого удаления: строки снова живые, счётчики +1."""
        if not self._taggable.tracks_soft_deletes:
            return
        if self._taggable.is_soft_deleted(item):
            logger.warning(f"Restore event for item {item.item_id} still carries a deleted marker, skipped")
            return

        try:
            async with AsyncUnitOfWork(self._session_factory) as uow:
                dead_ids = await self._attachments.tag_ids(uow.session, item.item_id, live=False)
                await self._attachments.sync(uow.session, item.item_id, self._taggable.synced_values(item))
                await self._tags.increment(uow.session, dead_ids)
        except SQLAlchemyError as e:
            logger.error(f"Failed to handle restore of item {item.item_id}: {e}")
            raise DatabaseError(f"Failed to handle restored item: {e}") from e
        logger.info(f"Item {item.item_id} restored, {len(dead_ids)} tag counters incremented")

    # --- операции по именам ---

    async def tag(self, item: ItemSnapshot, *names: str) -> List[TagORM]:
        """Привязывает теги по именам, создавая неизвестные. Возвращает вновь привязанные."""
        attached = []
        for tag in await self._tags.find_many_or_create(names, item.context):
            if await self.attach(item, tag.id):
                attached.append(tag)
        return attached

    async def untag(self, item: ItemSnapshot, *names: str) -> List[int]:
        """
        Отвязывает теги по именам; неизвестные имена пропускаются.
        Без имён отвязывает все теги элемента. Возвращает id отвязанных тегов.
        """
        if not names:
            return await self.detach_all(item)

        detached = []
        for name in dict.fromkeys(names):
            tag = await self._tags.find_by_name(name, item.context)
            if tag is None:
                continue
            if await self.detach(item, tag.id):
                detached.append(tag.id)
        return detached

    async def tags_for(self, item: ItemSnapshot) -> List[TagORM]:
        return await self._attachments.list_tags(item.item_id)

    async def tag_names(self, item: ItemSnapshot) -> List[str]:
        return [tag.name for tag in await self.tags_for(item)]

    async def has_tag(self, item: ItemSnapshot, name: str) -> bool:
        return name in await self.tag_names(item)

    async def _is_attached(self, item_id: int, tag_id: int) -> bool:
        async with get_session(self._session_factory) as session:
            return await self._attachments.get(session, item_id, tag_id) is not None

    def _row_is_live(self, row) -> bool:
        if not self._taggable.tracks_soft_deletes:
            return True
        return getattr(row, self._taggable.deleted_at_column) is None
