"""
Избранное: именованные папки закладок на файлы пользователя.

У пользователя ровно одна папка по умолчанию. Она создаётся при первом
обращении, её нельзя удалить, и в неё переезжают закладки из удалённой папки.
Закладки на удалённые файлы остаются в таблице, но не видны в выдаче.
"""
import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.favorite import Favorite, FavoriteFolder
from models.file import FileEntity
from storage.exceptions import Conflict, Forbidden, InvalidRequest, NotFound

logger = logging.getLogger(__name__)


async def get_folder(db: AsyncSession, user_id: int, folder_id: str) -> FavoriteFolder:
    result = await db.execute(
        select(FavoriteFolder)
        .where(FavoriteFolder.id == folder_id)
        .where(FavoriteFolder.user_id == user_id)
    )
    folder = result.scalars().first()
    if folder is None:
        raise NotFound("Favorites folder not found")
    return folder


async def get_or_create_default(db: AsyncSession, user_id: int) -> FavoriteFolder:
    """Папка по умолчанию; новая только добавляется в сессию, commit за вызывающим"""
    result = await db.execute(
        select(FavoriteFolder)
        .where(FavoriteFolder.user_id == user_id)
        .where(FavoriteFolder.is_default.is_(True))
        .order_by(FavoriteFolder.created_at)
    )
    folder = result.scalars().first()
    if folder is None:
        folder = FavoriteFolder(name=settings.FAVORITES_DEFAULT_FOLDER, is_default=True, user_id=user_id)
        db.add(folder)
        await db.flush()
        logger.info(f"Default favorites folder created for user {user_id}")
    return folder


async def _clear_default(db: AsyncSession, user_id: int, keep_id: Optional[str] = None):
    stmt = (
        update(FavoriteFolder)
        .where(FavoriteFolder.user_id == user_id)
        .where(FavoriteFolder.is_default.is_(True))
    )
    if keep_id:
        stmt = stmt.where(FavoriteFolder.id != keep_id)
    await db.execute(stmt.values(is_default=False).execution_options(synchronize_session=False))


async def list_folders(db: AsyncSession, user_id: int) -> List[Tuple[FavoriteFolder, int]]:
    """Папки (по умолчанию первой) с числом живых файлов в каждой"""
    default = await get_or_create_default(db, user_id)
    # Лишние папки по умолчанию (старые данные) сбрасываются
    await _clear_default(db, user_id, keep_id=default.id)
    await db.commit()

    folders = await db.execute(
        select(FavoriteFolder)
        .where(FavoriteFolder.user_id == user_id)
        .order_by(FavoriteFolder.is_default.desc(), FavoriteFolder.created_at, FavoriteFolder.name)
    )
    counts = await db.execute(
        select(Favorite.folder_id, func.count(Favorite.id))
        .join(FileEntity, FileEntity.id == Favorite.file_id)
        .where(Favorite.user_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
        .group_by(Favorite.folder_id)
    )
    by_folder = dict(counts.all())
    return [(folder, by_folder.get(folder.id, 0)) for folder in folders.scalars().all()]


async def create_folder(db: AsyncSession, user_id: int, name: str,
                        description: Optional[str] = None, is_default: bool = False) -> FavoriteFolder:
    name = (name or "").strip()
    if not name:
        raise InvalidRequest("Folder name is required")
    if is_default:
        await _clear_default(db, user_id)

    folder = FavoriteFolder(name=name, description=description, is_default=is_default, user_id=user_id)
    db.add(folder)
    await db.commit()
    logger.info(f"Favorites folder {folder.id} created for user {user_id}")
    return folder


async def update_folder(db: AsyncSession, user_id: int, folder_id: str, name: Optional[str] = None,
                        description: Optional[str] = None, is_default: Optional[bool] = None) -> FavoriteFolder:
    if name is None and description is None and is_default is None:
        raise InvalidRequest("Nothing to update")

    folder = await get_folder(db, user_id, folder_id)
    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidRequest("Folder name is required")
        folder.name = name
    if description is not None:
        folder.description = description
    if is_default is not None and is_default != folder.is_default:
        if not is_default:
            raise InvalidRequest("Mark another folder as default instead")
        await _clear_default(db, user_id, keep_id=folder.id)
        folder.is_default = True

    await db.commit()
    await db.refresh(folder)
    return folder


async def delete_folder(db: AsyncSession, user_id: int, folder_id: str) -> int:
    """
    Удаляет папку, её закладки переезжают в папку по умолчанию.
    Возвращает число перенесённых закладок.
    """
    folder = await get_folder(db, user_id, folder_id)
    if folder.is_default:
        raise Forbidden("Default favorites folder cannot be deleted")

    default = await get_or_create_default(db, user_id)
    present = await db.execute(select(Favorite.file_id).where(Favorite.folder_id == default.id))
    already = set(present.scalars().all())

    result = await db.execute(select(Favorite).where(Favorite.folder_id == folder.id))
    moved = 0
    for favorite in result.scalars().all():
        if favorite.file_id in already:
            await db.delete(favorite)
            continue
        favorite.folder_id = default.id
        already.add(favorite.file_id)
        moved += 1

    await db.flush()
    await db.delete(folder)
    await db.commit()
    logger.info(f"Favorites folder {folder_id} deleted, {moved} items moved to default")
    return moved


async def add_favorites(db: AsyncSession, user_id: int, file_ids: Iterable[str],
                        folder_id: Optional[str] = None) -> int:
    """
    Добавляет живые файлы пользователя в папку (по умолчанию - в основную).
    Уже добавленные пропускаются; возвращает число новых закладок.
    """
    unique_ids = list(dict.fromkeys(file_ids))
    if not unique_ids:
        raise InvalidRequest("No files selected")

    folder = await get_folder(db, user_id, folder_id) if folder_id else await get_or_create_default(db, user_id)
    target_id = folder.id

    owned = await db.execute(
        select(FileEntity.id)
        .where(FileEntity.id.in_(unique_ids))
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
    )
    owned_ids = set(owned.scalars().all())
    if not owned_ids:
        raise NotFound()

    present = await db.execute(
        select(Favorite.file_id)
        .where(Favorite.folder_id == target_id)
        .where(Favorite.file_id.in_(owned_ids))
    )
    new_ids = [file_id for file_id in unique_ids if file_id in owned_ids - set(present.scalars().all())]
    for file_id in new_ids:
        db.add(Favorite(user_id=user_id, file_id=file_id, folder_id=target_id))

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Already in favorites")
    logger.info(f"{len(new_ids)} favorites added to {target_id} for user {user_id}")
    return len(new_ids)


async def remove_favorites(db: AsyncSession, user_id: int, file_ids: Iterable[str],
                           folder_id: Optional[str] = None) -> int:
    """Без folder_id файл убирается из всех папок"""
    unique_ids = list(dict.fromkeys(file_ids))
    if not unique_ids:
        raise InvalidRequest("No files selected")

    stmt = delete(Favorite).where(Favorite.user_id == user_id).where(Favorite.file_id.in_(unique_ids))
    if folder_id:
        stmt = stmt.where(Favorite.folder_id == folder_id)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    return result.rowcount or 0


async def list_favorites(db: AsyncSession, user_id: int, folder_id: Optional[str] = None,
                         page: int = 1, page_size: int = 50) -> dict:
    """Живые файлы из избранного, недавно добавленные сверху"""
    if folder_id:
        await get_folder(db, user_id, folder_id)
    page = max(page, 1)
    page_size = max(1, min(page_size, 200))

    added = select(Favorite.file_id, func.max(Favorite.created_at).label("added_at")).where(
        Favorite.user_id == user_id
    )
    if folder_id:
        added = added.where(Favorite.folder_id == folder_id)
    added = added.group_by(Favorite.file_id).subquery()

    stmt = (
        select(FileEntity)
        .join(added, added.c.file_id == FileEntity.id)
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
    )
    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    result = await db.execute(
        stmt.order_by(added.c.added_at.desc(), FileEntity.name)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return {
        "items": [entity.to_dict() for entity in result.scalars().all()],
        "total": total,
        "page": page,
        "pageSize": page_size,
    }
