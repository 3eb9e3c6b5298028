# sensory_taggable/taggable.py

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Protocol, runtime_checkable

from sqlalchemy import Select, inspect

from sensory_taggable.db.tags.tag_orm import TagORM
from sensory_taggable.models.tag import ItemSnapshot


@runtime_checkable
class TagContextHook(Protocol):
    """
    Ограничивает видимость тегов (мультиарендность, права).
    Хук может добавлять условия, но не менять запрашиваемую таблицу.
    """

    def apply_query_context(self, stmt: Select, context: Any) -> Select:
        ...

    def apply_model_context(self, tag: TagORM, context: Any) -> None:
        ...


class Taggable:
    """
    Регистрация типа элементов, которые можно помечать тегами.

    :param item_model: ORM-класс элементов (принадлежит приложению).
    :param attachment_model: ORM-класс таблицы связей (наследник AttachmentMixin).
    :param sync_attributes: атрибуты элемента, копируемые в таблицу связей.
    :param deleted_at_column: колонка мягкого удаления элемента, если она есть.
        Учёт мягкого удаления включается, только если она же есть в sync_attributes.
    :param context_hook: необязательный хук контекста для запросов к тегам.
    """

    def __init__(
        self,
        item_model: type,
        attachment_model: type,
        sync_attributes: Iterable[str] = (),
        deleted_at_column: Optional[str] = None,
        context_hook: Optional[TagContextHook] = None,
    ):
        self.item_model = item_model
        self.attachment_model = attachment_model
        self.sync_attributes = tuple(sync_attributes)
        self.deleted_at_column = deleted_at_column
        self.context_hook = context_hook

        columns = inspect(attachment_model).columns
        missing = [name for name in self.sync_attributes if name not in columns]
        if missing:
            raise ValueError(
                f"{attachment_model.__name__} has no columns for synced attributes: {', '.join(missing)}"
            )

        mapper = inspect(item_model)
        self._item_key = mapper.get_property_by_column(mapper.primary_key[0]).key

    @property
    def tracks_soft_deletes(self) -> bool:
        return self.deleted_at_column is not None and self.deleted_at_column in self.sync_attributes

    @property
    def item_key(self) -> str:
        return self._item_key

    def item_key_column(self):
        return getattr(self.item_model, self._item_key)

    def snapshot(self, item: Any, context: Any = None) -> ItemSnapshot:
        """Снимает с ORM-объекта id и синхронизируемые атрибуты."""
        return ItemSnapshot(
            item_id=getattr(item, self._item_key),
            attributes={name: getattr(item, name) for name in self.sync_attributes},
            context=context,
        )

    def synced_values(self, item: ItemSnapshot) -> Dict[str, Any]:
        return {name: item.attributes.get(name) for name in self.sync_attributes}

    def is_soft_deleted(self, item: ItemSnapshot) -> bool:
        return self.tracks_soft_deletes and item.is_marked_deleted(self.deleted_at_column)

    def live_condition(self, attachment):
        """Условие "строка связи не удалена" для таблицы связей или её алиаса."""
        if not self.tracks_soft_deletes:
            return None
        return getattr(attachment, self.deleted_at_column).is_(None)

    def apply_query_context(self, stmt: Select, context: Any) -> Select:
        if context is None or self.context_hook is None:
            return stmt
        return self.context_hook.apply_query_context(stmt, context)

    def apply_model_context(self, tag: TagORM, context: Any) -> None:
        if context is None or self.context_hook is None:
            return
        self.context_hook.apply_model_context(tag, context)
