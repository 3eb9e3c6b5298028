from .tags.pg_repositoryTag import TagRepository
from .tags.pg_repositoryAttachment import AttachmentRepository

__all__ = [
    "TagRepository",
    "AttachmentRepository",
]
