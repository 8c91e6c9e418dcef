"""Кеш хлебных крошек папок (fastapi-cache)"""
import logging

from fastapi_cache import FastAPICache

logger = logging.getLogger(__name__)

PATH_NAMESPACE = "folder-path"


def path_key_builder(func, namespace: str = "", *, request=None, response=None, args=(), kwargs=None):
    kwargs = kwargs or {}
    user = kwargs.get("user")
    user_id = user.id if user is not None else "anonymous"
    return f"{namespace}:{user_id}:{kwargs.get('folder_id')}"


async def invalidate_paths() -> None:
    """Сбрасывает закешированные пути после rename/move/delete"""
    try:
        await FastAPICache.clear(namespace=PATH_NAMESPACE)
    except Exception as e:
        logger.warning(f"Failed to clear path cache: {str(e)}")
