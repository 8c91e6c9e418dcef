from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Основные настройки приложения
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    STORAGE_DIR: str = "uploads"
    LOG_LEVEL: str = "info"

    # Настройки аутентификации
    SECRET_KEY: str = "your-secret-key-here"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Настройки PostgreSQL (для Docker)
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "cloud_drive"

    # Прямой DSN, перекрывает POSTGRES_* (например sqlite+aiosqlite для локального запуска)
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Настройки Redis (для Docker)
    REDIS_URL: str = "redis://redis:6379/0"
    PATH_CACHE_TTL: int = 60

    # Квоты и лимиты
    DEFAULT_STORAGE_LIMIT: int = 10 * 1024 * 1024 * 1024  # 10GB
    MAX_FILE_SIZE: int = 100 * 1024 * 1024  # 100MB

    # Архивы и дерево папок
    ARCHIVE_COMPRESSION_LEVEL: int = 5
    MAX_TREE_DEPTH: int = 64
    NAME_SUFFIX_ATTEMPTS: int = 100

    # Недавние файлы и избранное
    RECENT_FILES_LIMIT: int = 10
    RECENT_FILES_MAX: int = 50
    FAVORITES_DEFAULT_FOLDER: str = "Избранное"

    # Минимальная длина пароля при смене
    PASSWORD_MIN_LENGTH: int = 8

    # Публичный адрес для ссылок на шары
    SHARE_BASE_URL: str = ""

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
