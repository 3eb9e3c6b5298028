# Модели "чужого" хранилища элементов, которые помечаются тегами в тестах.
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sensory_taggable.db import Base, AttachmentMixin, TagORM


class ArticleORM(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    comments: Mapped[List["CommentORM"]] = relationship(back_populates="article", lazy="select")


class CommentORM(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    body: Mapped[str] = mapped_column(String(255), nullable=False)

    article: Mapped["ArticleORM"] = relationship(back_populates="comments")


class ArticleTagORM(AttachmentMixin, Base):
    __tablename__ = "article_tags"

    item_id: Mapped[int] = mapped_column(ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True)
    # Синхронизируемая копия ArticleORM.deleted_at
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class NoteORM(Base):
    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    body: Mapped[str] = mapped_column(String(255), nullable=False)


class NoteTagORM(AttachmentMixin, Base):
    __tablename__ = "note_tags"

    item_id: Mapped[int] = mapped_column(ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True)


class VisibilityHook:
    """Прячет теги 'private:*' от всех, кроме контекста 'admin'."""

    def __init__(self):
        self.created = []

    def apply_query_context(self, stmt, context):
        if context == "admin":
            return stmt
        return stmt.where(TagORM.name.notlike("private:%"))

    def apply_model_context(self, tag, context):
        self.created.append((tag.name, context))
