# sensory_taggable/query/builder.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import Select, and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased, selectinload

from sensory_taggable.db import TagORM
from sensory_taggable.db.base import get_session
from sensory_taggable.exceptions import DatabaseError
from sensory_taggable.models.tag import TagQueryPage
from sensory_taggable.query.filters import ClauseKind, FilterClause, TagFilters, TagRef
from sensory_taggable.repositories.tags.pg_repositoryTag import TagRepository
from sensory_taggable.taggable import Taggable

logger = logging.getLogger(__name__)

# Любое any_of-условие весит больше любого одиночного и уходит в конец цепочки join'ов.
ANY_OF_WEIGHT_BIAS = 100_000_000


@dataclass(frozen=True)
class ResolvedClause:
    clause: FilterClause
    tag_ids: Tuple[int, ...]
    weight: int

    @property
    def any_of(self) -> bool:
        return self.clause.any_of


@dataclass(frozen=True)
class QueryPlan:
    anchor: ResolvedClause
    joins: Tuple[ResolvedClause, ...]

    @property
    def distinct(self) -> bool:
        return self.anchor.any_of or any(c.any_of for c in self.joins)

    @property
    def clauses(self) -> Tuple[ResolvedClause, ...]:
        return (self.anchor,) + self.joins


def compile_plan(clauses: Sequence[FilterClause], tags: Iterable[TagORM]) -> Optional[QueryPlan]:
    """
    Сопоставляет условия с найденными тегами и упорядочивает их по селективности.
    Возвращает None, если запрос невыполним: нет условий, одиночный тег не
    найден или у any_of-условия не нашлось ни одного тега.
    """
    if not clauses:
        return None

    found: Dict[ClauseKind, Dict[Any, int]] = {ClauseKind.TAG_ID: {}, ClauseKind.TAG_NAME: {}}
    item_counts: Dict[int, int] = {}
    for tag in tags:
        found[ClauseKind.TAG_ID][tag.id] = tag.id
        found[ClauseKind.TAG_NAME][tag.name] = tag.id
        item_counts[tag.id] = tag.item_count

    resolved: List[ResolvedClause] = []
    for clause in clauses:
        lookup = found[clause.kind]
        if clause.any_of:
            tag_ids = sorted({lookup[v] for v in clause.values if v in lookup})
            if not tag_ids:
                return None
            weight = ANY_OF_WEIGHT_BIAS + max(item_counts[i] for i in tag_ids)
            resolved.append(ResolvedClause(clause, tuple(tag_ids), weight))
        else:
            if clause.value not in lookup:
                return None
            tag_id = lookup[clause.value]
            resolved.append(ResolvedClause(clause, (tag_id,), item_counts[tag_id]))

    resolved.sort(key=lambda c: c.weight)
    return QueryPlan(anchor=resolved[0], joins=tuple(resolved[1:]))


class TagQuery:
    """
    Запрос элементов по тегам. Накапливает условия, один раз разрешает их
    в план (один запрос к таблице тегов) и строит один SQL-запрос к таблице
    связей: самое селективное условие фильтрует базовый алиас t, остальные
    присоединяются self-join'ами t0, t1, ... по item_id.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        taggable: Taggable,
        tag_repo: TagRepository,
        per_page: int = 15,
    ):
        self._session_factory = session_factory
        self._taggable = taggable
        self._tag_repo = tag_repo
        self._per_page = per_page

        self.filters = TagFilters()
        self._context: Any = None
        self._relations: List[str] = []
        self._latest = True
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

        self._resolved = False
        self._plan: Optional[QueryPlan] = None

    # --- накопление условий ---

    def _changed(self) -> "TagQuery":
        self._resolved = False
        self._plan = None
        return self

    def with_tag(self, *names: str) -> "TagQuery":
        self.filters.with_tag(*names)
        return self._changed()

    def with_tag_id(self, *tag_ids: int) -> "TagQuery":
        self.filters.with_tag_id(*tag_ids)
        return self._changed()

    def with_ref(self, *refs: TagRef) -> "TagQuery":
        self.filters.with_ref(*refs)
        return self._changed()

    def with_any_tag(self, names: Iterable[str]) -> "TagQuery":
        self.filters.with_any_tag(names)
        return self._changed()

    def with_any_tag_id(self, tag_ids: Iterable[int]) -> "TagQuery":
        self.filters.with_any_tag_id(tag_ids)
        return self._changed()

    def with_any_ref(self, refs: Iterable[TagRef]) -> "TagQuery":
        self.filters.with_any_ref(refs)
        return self._changed()

    def with_tag_context(self, context: Any) -> "TagQuery":
        self._context = context
        return self._changed()

    # --- форма результата ---

    def with_(self, *relations: str) -> "TagQuery":
        """Жадная подгрузка связей элементов (selectinload) при get()."""
        self._relations.extend(relations)
        return self

    def latest(self) -> "TagQuery":
        self._latest = True
        return self

    def oldest(self) -> "TagQuery":
        self._latest = False
        return self

    def take(self, limit: int) -> "TagQuery":
        self._limit = limit
        return self

    def skip(self, offset: int) -> "TagQuery":
        self._offset = offset
        return self

    # --- компиляция ---

    async def resolve(self) -> Optional[QueryPlan]:
        """План запроса или None для невыполнимого фильтра. Считается один раз."""
        if self._resolved:
            return self._plan

        if len(self.filters):
            tags = await self._tag_repo.resolve(
                self.filters.requested_ids(), self.filters.requested_names(), self._context
            )
        else:
            tags = []
        self._plan = compile_plan(self.filters.clauses, tags)
        self._resolved = True

        if self._plan is None:
            logger.debug("Tag filters are unsatisfiable, the join query is skipped")
        return self._plan

    def build(self, plan: QueryPlan) -> Tuple[Select, Any]:
        """Запрос item_id по плану, без сортировки. Возвращает (select, базовый алиас)."""
        model = self._taggable.attachment_model
        t = aliased(model, name="t")

        stmt = select(t.item_id).where(_match(t, plan.anchor))
        live = self._taggable.live_condition(t)
        if live is not None:
            stmt = stmt.where(live)

        for i, clause in enumerate(plan.joins):
            ti = aliased(model, name=f"t{i}")
            if clause.any_of:
                stmt = stmt.join(ti, t.item_id == ti.item_id).where(ti.tag_id.in_(clause.tag_ids))
            else:
                stmt = stmt.join(ti, and_(t.item_id == ti.item_id, ti.tag_id == clause.tag_ids[0]))

        if plan.distinct:
            # Элемент может совпасть с несколькими тегами набора через разные строки.
            stmt = stmt.group_by(t.item_id)
        return stmt, t

    def _ordered(self, plan: QueryPlan, limit: Optional[int], offset: Optional[int]) -> Select:
        stmt, t = self.build(plan)
        recency = func.max(t.attached_at) if plan.distinct else t.attached_at
        if self._latest:
            stmt = stmt.order_by(recency.desc(), t.item_id.desc())
        else:
            stmt = stmt.order_by(recency.asc(), t.item_id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)
        return stmt

    async def compile(self) -> Optional[Select]:
        plan = await self.resolve()
        if plan is None:
            return None
        return self._ordered(plan, self._limit, self._offset)

    # --- выполнение ---

    async def count(self) -> int:
        plan = await self.resolve()
        if plan is None:
            return 0
        stmt, _ = self.build(plan)
        async with get_session(self._session_factory) as session:
            try:
                res = await session.execute(select(func.count()).select_from(stmt.subquery()))
                return res.scalar_one()
            except SQLAlchemyError as e:
                logger.error(f"Tag count query failed: {e}")
                raise DatabaseError(f"Failed to count tagged items: {e}") from e

    async def item_ids(self) -> List[int]:
        plan = await self.resolve()
        if plan is None:
            return []
        async with get_session(self._session_factory) as session:
            return await self._fetch_ids(session, plan, self._limit, self._offset)

    async def get(self) -> List[Any]:
        return await self._fetch(self._limit, self._offset)

    async def first(self) -> Optional[Any]:
        items = await self._fetch(1, self._offset)
        return items[0] if items else None

    async def paginate(self, page: int = 1, per_page: Optional[int] = None) -> TagQueryPage:
        per_page = per_page or self._per_page
        page = max(1, page)
        total = await self.count()
        items = await self._fetch(per_page, (page - 1) * per_page) if total else []
        return TagQueryPage(items=items, total=total, page=page, per_page=per_page)

    async def _fetch_ids(self, session: AsyncSession, plan: QueryPlan, limit, offset) -> List[int]:
        try:
            res = await session.execute(self._ordered(plan, limit, offset))
            return [row[0] for row in res.all()]
        except SQLAlchemyError as e:
            logger.error(f"Tag filter query failed: {e}")
            raise DatabaseError(f"Failed to query tagged items: {e}") from e

    async def _fetch(self, limit: Optional[int], offset: Optional[int]) -> List[Any]:
        plan = await self.resolve()
        if plan is None:
            return []

        async with get_session(self._session_factory) as session:
            ids = await self._fetch_ids(session, plan, limit, offset)
            if not ids:
                return []

            item_model = self._taggable.item_model
            stmt = select(item_model).where(self._taggable.item_key_column().in_(ids))
            if self._relations:
                stmt = stmt.options(*(selectinload(getattr(item_model, r)) for r in self._relations))
            try:
                res = await session.execute(stmt)
                items = list(res.scalars().all())
            except SQLAlchemyError as e:
                logger.error(f"Item fetch failed: {e}")
                raise DatabaseError(f"Failed to fetch tagged items: {e}") from e

        # Выборка по IN порядок не хранит - возвращаем порядок из запроса по тегам.
        position = {item_id: idx for idx, item_id in enumerate(ids)}
        key = self._taggable.item_key
        return sorted(items, key=lambda item: position[getattr(item, key)])


def _match(alias, clause: ResolvedClause):
    if clause.any_of:
        return alias.tag_id.in_(clause.tag_ids)
    return alias.tag_id == clause.tag_ids[0]
