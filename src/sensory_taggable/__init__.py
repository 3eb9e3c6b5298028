# Файл: src/sensory_taggable/__init__.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from .client import TagClient
from .config import get_settings, TaggableConfig, PostgresConfig, TaggingConfig
from .taggable import Taggable, TagContextHook
from .tagger import Tagger
from .models import ItemSnapshot, TagInDB, TagQueryPage
from .query import ByName, ById, TagFilters, TagQuery
from .repositories import TagRepository, AttachmentRepository

from .exceptions import *


def create_tag_client(
    taggable: Taggable,
    config: Optional[TaggableConfig] = None,
    engine: Optional[AsyncEngine] = None,
) -> TagClient:
    """
    Фабричная функция для создания и конфигурации TagClient.

    :param taggable: Регистрация типа элементов (модель элементов и таблица связей).
    :param config: Единый объект с настройками.
                   Если не предоставлен, используются переменные окружения.
    :param engine: Готовый движок. Если передан, пул из config не создаётся
                   и закрывать движок должен вызывающий.
    :return: Сконфигурированный экземпляр TagClient.
    """
    if config is None:
        s = get_settings()
        config = TaggableConfig(postgres=s.postgres, tagging=s.tagging)

    owns_engine = engine is None
    if owns_engine:
        connect_args = {}
        if config.postgres.is_asyncpg():
            connect_args["server_settings"] = {"application_name": config.postgres.application_name}
        engine = create_async_engine(
            config.postgres.get_pg_dsn(),
            pool_size=config.postgres.pool_size,
            max_overflow=config.postgres.max_overflow,
            pool_timeout=config.postgres.pool_timeout,
            pool_recycle=config.postgres.pool_recycle,
            pool_pre_ping=config.postgres.pool_pre_ping,
            connect_args=connect_args,
        )

    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    tag_repo = TagRepository(session_factory, taggable)
    attachment_repo = AttachmentRepository(session_factory, taggable)
    tagger = Tagger(session_factory, taggable, tag_repo, attachment_repo)

    return TagClient(
        taggable=taggable,
        session_factory=session_factory,
        tag_repo=tag_repo,
        attachment_repo=attachment_repo,
        tagger=tagger,
        tagging=config.tagging,
        engine=engine if owns_engine else None,
    )

__all__ = [
    "TagClient", "create_tag_client", "Taggable", "TagContextHook", "Tagger",
    "TaggableConfig", "PostgresConfig", "TaggingConfig",
    "ItemSnapshot", "TagInDB", "TagQueryPage",
    "ByName", "ById", "TagFilters", "TagQuery",
    "TagRepository", "AttachmentRepository",
    "TaggableError", "DatabaseError", "NotFoundError",
]
