import pytest
import pytest_asyncio
from sqlalchemy import event, update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

# Импортируем Base для создания таблиц
from sensory_taggable.db.base import Base
from sensory_taggable.db import TagORM
# Фабрика - чтобы тесты собирали клиент так же, как реальное приложение
from sensory_taggable import TagClient, Taggable, create_tag_client

from tagged_models import ArticleORM, ArticleTagORM, NoteORM, NoteTagORM, VisibilityHook


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    Движок на файловой SQLite-базе во временном каталоге: у каждого теста
    своя база со всеми таблицами.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tags.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def visibility_hook():
    return VisibilityHook()


@pytest.fixture
def article_taggable(visibility_hook) -> Taggable:
    return Taggable(
        item_model=ArticleORM,
        attachment_model=ArticleTagORM,
        sync_attributes=("deleted_at",),
        deleted_at_column="deleted_at",
        context_hook=visibility_hook,
    )


@pytest.fixture
def articles(db_engine, article_taggable) -> TagClient:
    return create_tag_client(article_taggable, engine=db_engine)


@pytest.fixture
def notes(db_engine) -> TagClient:
    return create_tag_client(Taggable(item_model=NoteORM, attachment_model=NoteTagORM), engine=db_engine)


@pytest.fixture
def make_article(session_factory):
    async def _make(title: str = "article", **kwargs) -> ArticleORM:
        async with session_factory() as session:
            article = ArticleORM(title=title, **kwargs)
            session.add(article)
            await session.commit()
            return article
    return _make


@pytest.fixture
def make_note(session_factory):
    async def _make(body: str = "note") -> NoteORM:
        async with session_factory() as session:
            note = NoteORM(body=body)
            session.add(note)
            await session.commit()
            return note
    return _make


@pytest.fixture
def set_item_count(session_factory):
    """Выставляет счётчик тега напрямую - для проверок порядка join'ов."""
    async def _set(tag_id: int, value: int) -> None:
        async with session_factory() as session:
            await session.execute(update(TagORM).where(TagORM.id == tag_id).values(item_count=value))
            await session.commit()
    return _set


@pytest.fixture
def sql_log(db_engine):
    """Собирает все SQL-запросы, ушедшие в базу."""
    statements = []

    def _collect(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(db_engine.sync_engine, "before_cursor_execute", _collect)
    yield statements
    event.remove(db_engine.sync_engine, "before_cursor_execute", _collect)
