import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sensory_taggable.config import TaggingConfig
from sensory_taggable.db import TagORM
from sensory_taggable.exceptions import NotFoundError
from sensory_taggable.models.tag import ItemSnapshot, TagInDB
from sensory_taggable.query import TagQuery, TagRef
from sensory_taggable.repositories import AttachmentRepository, TagRepository
from sensory_taggable.taggable import Taggable
from sensory_taggable.tagger import Tagger

logger = logging.getLogger(__name__)


class TagClient:
    """
    Единая точка доступа к тегам одного типа элементов.
    """

    def __init__(
        self,
        taggable: Taggable,
        session_factory: async_sessionmaker[AsyncSession],
        tag_repo: TagRepository,
        attachment_repo: AttachmentRepository,
        tagger: Tagger,
        tagging: TaggingConfig | None = None,
        engine: AsyncEngine | None = None,
    ):
        self.taggable = taggable
        self.tags = tag_repo
        self.attachments = attachment_repo
        self.tagger = tagger
        self._session_factory = session_factory
        self._tagging = tagging or TaggingConfig()
        self._engine = engine

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    def snapshot(self, item: Any, context: Any = None) -> ItemSnapshot:
        return self.taggable.snapshot(item, context)

    # ――― запросы по тегам ――― #

    def query(self) -> TagQuery:
        return TagQuery(self._session_factory, self.taggable, self.tags, per_page=self._tagging.per_page)

    def with_tag(self, *names: str) -> TagQuery:
        return self.query().with_tag(*names)

    def with_tag_id(self, *tag_ids: int) -> TagQuery:
        return self.query().with_tag_id(*tag_ids)

    def with_ref(self, *refs: TagRef) -> TagQuery:
        return self.query().with_ref(*refs)

    def with_any_tag(self, names: Iterable[str]) -> TagQuery:
        return self.query().with_any_tag(names)

    def with_any_tag_id(self, tag_ids: Iterable[int]) -> TagQuery:
        return self.query().with_any_tag_id(tag_ids)

    def with_any_ref(self, refs: Iterable[TagRef]) -> TagQuery:
        return self.query().with_any_ref(refs)

    # ――― жизненный цикл элемента ――― #

    async def tag(self, item: ItemSnapshot, *names: str) -> List[TagORM]:
        return await self.tagger.tag(item, *names)

    async def untag(self, item: ItemSnapshot, *names: str) -> List[int]:
        return await self.tagger.untag(item, *names)

    async def item_saved(self, item: ItemSnapshot) -> None:
        await self.tagger.sync(item)

    async def item_deleted(self, item: ItemSnapshot) -> None:
        await self.tagger.handle_deleted(item)

    async def item_restored(self, item: ItemSnapshot) -> None:
        await self.tagger.handle_restored(item)

    # ――― теги ――― #

    async def get_tag(self, tag_id: int) -> TagInDB:
        orm = await self.tags.get_by_id(tag_id)
        if orm is None:
            raise NotFoundError(f"Tag with id {tag_id} not found.")
        return TagInDB.model_validate(orm)

    async def list_tags(self, order: str = "popular", limit: int = 50, offset: int = 0, context: Any = None) -> List[TagInDB]:
        orms = await self.tags.list_tags(order=order, limit=limit, offset=offset, context=context)
        return [TagInDB.model_validate(o) for o in orms]
