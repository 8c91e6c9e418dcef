import logging

from sqlalchemy import update, case
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User
from .exceptions import QuotaExceeded

logger = logging.getLogger(__name__)


async def reserve(db: AsyncSession, user_id: int, size: int) -> None:
    """
    Атомарно увеличивает storage_used, если результат не превысит лимит.
    Проверка и инкремент - один UPDATE; коммит делает вызывающий.
    """
    size = int(size or 0)
    if size <= 0:
        return
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .where(User.storage_used + size <= User.storage_limit)
        .values(storage_used=User.storage_used + size)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info(f"Quota exceeded for user {user_id}: +{size} bytes rejected")
        raise QuotaExceeded(f"Not enough storage space for {size} bytes")


async def release(db: AsyncSession, user_id: int, size: int) -> None:
    size = int(size or 0)
    if size <= 0:
        return
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(storage_used=case((User.storage_used >= size, User.storage_used - size), else_=0))
        .execution_options(synchronize_session=False)
    )


def usage(user: User) -> dict:
    total = user.storage_limit or 0
    used = user.storage_used or 0
    return {
        "total": total,
        "used": used,
        "available": max(0, total - used),
        "percentage": round(min(100.0, used / total * 100), 2) if total > 0 else 100.0,
    }
