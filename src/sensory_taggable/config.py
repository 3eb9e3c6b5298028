# Файл: src/sensory_taggable/config.py

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

# --- 1. Настройки PostgreSQL ---
class PostgresConfig(BaseModel):
    user: str = "postgres"
    password: str = "postgres"
    host: str = "localhost"
    port: int = 5432
    db: str = "tags"

    # Полный DSN перекрывает отдельные поля (например, sqlite+aiosqlite:// в тестах).
    dsn: Optional[str] = None

    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool  = True
    application_name: str = "sensory_taggable"

    def get_pg_dsn(self) -> str:
        """Собирает DSN для SQLAlchemy из полей этого объекта."""
        if self.dsn:
            return self.dsn
        return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.db}"

    def is_asyncpg(self) -> bool:
        return self.get_pg_dsn().startswith("postgresql+asyncpg://")

# --- 2. Настройки самого теггинга ---
class TaggingConfig(BaseModel):
    per_page: int = Field(15, ge=1, description="Размер страницы по умолчанию для paginate()")

# --- 3. Основной класс для явной передачи конфигурации ---
class TaggableConfig(BaseModel):
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    tagging: TaggingConfig = Field(default_factory=TaggingConfig)

# --- 4. Settings читает то же самое из окружения / .env ---
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter='_',
        extra='ignore'
    )

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    tagging: TaggingConfig = Field(default_factory=TaggingConfig)

# Ленивая инициализация
_cached_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """
    Возвращает синглтон-экземпляр настроек, создавая его при первом вызове.
    Это предотвращает ошибки валидации при импорте.
    """
    global _cached_settings
    if _cached_settings is None:
        _cached_settings = Settings()
    return _cached_settings
