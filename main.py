from fastapi import FastAPI
from contextlib import asynccontextmanager
from pathlib import Path
import logging
from redis.asyncio import Redis
from fastapi_cache import FastAPICache
from fastapi_cache.backends.redis import RedisBackend

from config.settings import settings
from config.database import engine, Base
from auth.router import router as auth_router
from files.router import router as files_router
from folders.router import router as folders_router
from favorites.router import router as favorites_router
from shares.router import router as shares_router

# Настройка логгера
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Обработчик событий жизненного цикла приложения"""
    try:
        # Создаем папку для blob'ов
        storage_path = Path(settings.STORAGE_DIR)
        storage_path.mkdir(exist_ok=True, parents=True)
        logger.info(f"Storage directory ready at: {storage_path.absolute()}")

        # Инициализация БД (схему в проде ведёт alembic)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

        # Кеш путей папок в Redis
        redis = Redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5
        )

        try:
            if await redis.ping():
                logger.info("Successfully connected to Redis server")
                FastAPICache.init(RedisBackend(redis), prefix="fastapi-cache")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            raise

        yield

        await redis.close()
        await engine.dispose()

    except Exception as e:
        logger.error(f"Startup error: {str(e)}")
        raise

app = FastAPI(
    title="Cloud Drive API",
    version="1.0.0",
    lifespan=lifespan
)

# Подключение роутеров
app.include_router(auth_router)
app.include_router(files_router)
app.include_router(folders_router)
app.include_router(shares_router)
app.include_router(favorites_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL
    )
