import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class FolderCreationGuard:
    """
    Дедупликация одновременных create-if-missing в пределах процесса.
    Ключ - (user_id, вычисленный путь, parent_id); второй запрос ждёт
    результат первого. Запись удаляется сразу после завершения.
    Между инстансами защищает уникальный индекс в БД.
    """

    def __init__(self):
        self._pending: Dict[Hashable, asyncio.Future] = {}

    def __contains__(self, key) -> bool:
        return key in self._pending

    async def run(self, key: Hashable, factory: Callable[[], Awaitable]):
        pending = self._pending.get(key)
        if pending is not None:
            logger.info(f"Folder creation already in progress for {key}, waiting")
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # ожидающих может не быть
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._pending.pop(key, None)


folder_guard = FolderCreationGuard()
