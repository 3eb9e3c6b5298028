import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from sensory_taggable import TaggableConfig, PostgresConfig, TaggingConfig, Taggable, create_tag_client
from sensory_taggable.db.base import Base
from tagged_models import NoteORM, NoteTagORM


@pytest.mark.asyncio
async def test_client_built_from_config(tmp_path):
    """
    Клиент, собранный фабрикой по конфигу (без готового движка), сам владеет пулом
    и закрывает его в aclose().
    """
    # --- ARRANGE ---
    dsn = f"sqlite+aiosqlite:///{tmp_path / 'client.db'}"
    engine = create_async_engine(dsn)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()

    config = TaggableConfig(postgres=PostgresConfig(dsn=dsn), tagging=TaggingConfig(per_page=2))
    client = create_tag_client(Taggable(item_model=NoteORM, attachment_model=NoteTagORM), config=config)

    try:
        # --- ACT ---
        for item_id in (1, 2, 3):
            await client.tag(client.taggable.snapshot(NoteORM(id=item_id, body="n")), "shared")
        page = await client.with_tag("shared").paginate()

        # --- ASSERT ---
        assert page.per_page == 2
        assert page.total == 3
        assert (await client.tags.find_by_name("shared")).item_count == 3
    finally:
        await client.aclose()


def test_taggable_rejects_unknown_sync_attributes():
    with pytest.raises(ValueError):
        Taggable(item_model=NoteORM, attachment_model=NoteTagORM, sync_attributes=("deleted_at",))


def test_soft_delete_tracking_requires_synced_column():
    taggable = Taggable(item_model=NoteORM, attachment_model=NoteTagORM, deleted_at_column="deleted_at")

    assert taggable.tracks_soft_deletes is False
    assert taggable.item_key == "id"
