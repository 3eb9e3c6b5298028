# sensory_taggable/query/filters.py

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Set, Tuple, Union


@dataclass(frozen=True)
class ByName:
    name: str


@dataclass(frozen=True)
class ById:
    tag_id: int


TagRef = Union[ByName, ById]


class ClauseKind(str, enum.Enum):
    TAG_ID = "tag_id"
    TAG_NAME = "tag_name"


@dataclass(frozen=True)
class FilterClause:
    """
    Одно условие фильтра. Одиночное условие - "есть тег X",
    условие any_of - "есть хотя бы один из тегов values".
    """
    kind: ClauseKind
    values: Tuple[Union[int, str], ...]
    any_of: bool = False

    @property
    def value(self) -> Union[int, str]:
        return self.values[0]


class TagFilters:
    """
    Накопитель условий. Условия объединяются через AND в порядке добавления,
    значения внутри any_of-условия - через OR. Никакого I/O и никакой
    валидации здесь нет: несуществующие теги отсекаются на этапе компиляции.
    """

    def __init__(self):
        self._clauses: List[FilterClause] = []

    def with_tag(self, *names: str) -> "TagFilters":
        for name in names:
            self._clauses.append(FilterClause(ClauseKind.TAG_NAME, (name,)))
        return self

    def with_tag_id(self, *tag_ids: int) -> "TagFilters":
        for tag_id in tag_ids:
            self._clauses.append(FilterClause(ClauseKind.TAG_ID, (tag_id,)))
        return self

    def with_ref(self, *refs: TagRef) -> "TagFilters":
        for ref in refs:
            if isinstance(ref, ById):
                self.with_tag_id(ref.tag_id)
            else:
                self.with_tag(ref.name)
        return self

    def with_any_tag(self, names: Iterable[str]) -> "TagFilters":
        self._clauses.append(FilterClause(ClauseKind.TAG_NAME, _unique(names), any_of=True))
        return self

    def with_any_tag_id(self, tag_ids: Iterable[int]) -> "TagFilters":
        self._clauses.append(FilterClause(ClauseKind.TAG_ID, _unique(tag_ids), any_of=True))
        return self

    def with_any_ref(self, refs: Iterable[TagRef]) -> "TagFilters":
        """
        Ссылки по id и по имени попадают в два разных any_of-условия.
        Пустой набор ссылок даёт одно пустое условие по именам: такой фильтр
        не совпадает ни с чем.
        """
        refs = list(refs)
        ids = [r.tag_id for r in refs if isinstance(r, ById)]
        names = [r.name for r in refs if isinstance(r, ByName)]
        if ids:
            self.with_any_tag_id(ids)
        if names or not ids:
            self.with_any_tag(names)
        return self

    @property
    def clauses(self) -> Tuple[FilterClause, ...]:
        return tuple(self._clauses)

    def requested_ids(self) -> Set[int]:
        return {v for c in self._clauses if c.kind is ClauseKind.TAG_ID for v in c.values}

    def requested_names(self) -> Set[str]:
        return {v for c in self._clauses if c.kind is ClauseKind.TAG_NAME for v in c.values}

    def __iter__(self) -> Iterator[FilterClause]:
        return iter(self._clauses)

    def __len__(self) -> int:
        return len(self._clauses)


def _unique(values: Iterable) -> tuple:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return tuple(seen)
