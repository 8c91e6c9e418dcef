from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from .settings import settings

# Базовый класс для моделей
Base = declarative_base()

# SQLite не переносит пул соединений между event loop'ами
engine_options = {}
if settings.DATABASE_URL.startswith("sqlite"):
    engine_options["poolclass"] = NullPool

# Движок подключения
engine = create_async_engine(settings.DATABASE_URL, **engine_options)

# Фабрика сессий
async_session = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

async def get_db():
    async with async_session() as session:
        yield session
