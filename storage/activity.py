"""Журнал открытий файлов: недавние файлы и история доступа"""
import logging
import math
from typing import List

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.activity import FileAccess
from models.file import FileEntity

logger = logging.getLogger(__name__)


async def record_access(db: AsyncSession, user_id: int, entity: FileEntity) -> FileAccess:
    access = FileAccess(user_id=user_id, file_id=entity.id)
    db.add(access)
    await db.commit()
    logger.info(f"Access to {entity.id} recorded for user {user_id}")
    return access


async def recent_files(db: AsyncSession, user_id: int, limit: int = None) -> List[FileEntity]:
    """
    Живые файлы пользователя, последние открытые сверху.
    Файлы без записей в журнале сортируются по updated_at.
    """
    if limit is None:
        limit = settings.RECENT_FILES_LIMIT
    limit = max(1, min(limit, settings.RECENT_FILES_MAX))

    last_access = (
        select(FileAccess.file_id, func.max(FileAccess.accessed_at).label("accessed_at"))
        .where(FileAccess.user_id == user_id)
        .group_by(FileAccess.file_id)
        .subquery()
    )
    result = await db.execute(
        select(FileEntity)
        .outerjoin(last_access, last_access.c.file_id == FileEntity.id)
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
        .where(FileEntity.is_folder.is_(False))
        .order_by(
            func.coalesce(last_access.c.accessed_at, FileEntity.updated_at).desc(),
            FileEntity.name,
        )
        .limit(limit)
    )
    return list(result.scalars().all())


async def access_history(db: AsyncSession, file_id: str, page: int = 1, page_size: int = 50) -> dict:
    page = max(page, 1)
    page_size = max(1, min(page_size, 100))

    total = (await db.execute(
        select(func.count()).select_from(FileAccess).where(FileAccess.file_id == file_id)
    )).scalar() or 0
    result = await db.execute(
        select(FileAccess)
        .where(FileAccess.file_id == file_id)
        .order_by(FileAccess.accessed_at.desc(), FileAccess.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )

    history = [
        {
            "id": record.id,
            "userId": record.user_id,
            "userName": record.user.username if record.user else None,
            "accessedAt": record.accessed_at.isoformat(),
        }
        for record in result.scalars().all()
    ]
    return {
        "history": history,
        "pagination": {
            "total": total,
            "page": page,
            "pageSize": page_size,
            "totalPages": math.ceil(total / page_size),
        },
    }
