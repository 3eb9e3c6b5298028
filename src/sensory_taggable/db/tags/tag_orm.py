# sensory_taggable/db/tags/tag_orm.py

from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, DateTime, Index, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column
from sensory_taggable.db.base import Base, CreatedAt, UpdatedAt


class TagORM(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Имя тега уникально и чувствительно к регистру: "Python" и "python" - разные теги.
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Число живых (не удалённых мягко) привязок. Меняется только атомарным UPDATE.
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("name", name="uq_tags_name"),
        # Индексы под листинги: новые, недавно обновлённые, по алфавиту, популярные.
        Index("idx_tags_newest", "created_at", "deleted_at", "item_count"),
        Index("idx_tags_updated", "updated_at", "deleted_at", "item_count", "created_at"),
        Index("idx_tags_alpha", "name", "deleted_at", "item_count", "created_at"),
        Index("idx_tags_popular", "item_count", "deleted_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TagORM id={self.id} name={self.name!r} item_count={self.item_count}>"
