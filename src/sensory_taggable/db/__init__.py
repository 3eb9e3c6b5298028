# sensory_taggable/db/__init__.py

from .base import Base, get_session
from .uow import AsyncUnitOfWork

from .tags.tag_orm import TagORM
from .tags.attachment_orm import AttachmentMixin


__all__ = [
    "Base",
    "get_session",
    "AsyncUnitOfWork",
    "TagORM",
    "AttachmentMixin",
]
