# sensory_taggable/db/tags/attachment_orm.py

from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, declared_attr


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AttachmentMixin:
    """
    Колонки таблицы связей "элемент - тег". Для каждого типа элементов
    приложение объявляет свою таблицу:

        class ArticleTagORM(AttachmentMixin, Base):
            __tablename__ = "article_tags"
            item_id: Mapped[int] = mapped_column(ForeignKey("articles.id"), primary_key=True)
            deleted_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    Дополнительные колонки (например, deleted_at) - это синхронизируемые
    атрибуты элемента, их перечисляют в Taggable.sync_attributes.
    """

    # Составной первичный ключ гарантирует уникальность пары (элемент, тег).
    item_id: Mapped[int] = mapped_column(Integer, primary_key=True)

    @declared_attr
    def tag_id(cls) -> Mapped[int]:
        return mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True, index=True)

    attached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
