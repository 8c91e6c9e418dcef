from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi_cache.decorator import cache
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from auth.dependencies import get_current_user
from config.database import get_db
from config.settings import settings
from files import service
from files.router import zip_response
from models.file import FileEntity
from models.user import User
from storage.archive import build_folder_archive
from storage.tree import breadcrumbs
from .cache import PATH_NAMESPACE, path_key_builder

router = APIRouter(prefix="/folders", tags=["folders"])
logger = logging.getLogger(__name__)


class FolderCreate(BaseModel):
    name: str
    parentId: Optional[str] = None
    tags: List[str] = []
    createIfMissing: bool = False


@router.get("", summary="Список папок")
async def list_folders(
    parent_id: Optional[str] = Query(None, alias="parentId"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Только папки внутри parentId (или в корне)"""
    try:
        await service.get_parent_folder(db, user.id, parent_id)
        stmt = (
            service.live_files()
            .where(FileEntity.uploader_id == user.id)
            .where(FileEntity.is_folder.is_(True))
        )
        if parent_id:
            stmt = stmt.where(FileEntity.parent_id == parent_id)
        else:
            stmt = stmt.where(FileEntity.parent_id.is_(None))
        result = await db.execute(stmt.order_by(FileEntity.name))
        return {"items": [folder.to_dict() for folder in result.scalars().all()]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list folders: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve folders")


@router.post("", status_code=status.HTTP_201_CREATED, summary="Создать папку")
async def create_folder(
    payload: FolderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    По умолчанию занятое имя получает суффикс: "Docs" -> "Docs(1)".
    С createIfMissing возвращается уже существующая папка.
    """
    try:
        if payload.createIfMissing:
            folder = await service.ensure_folder(db, user.id, payload.name, payload.parentId, payload.tags)
        else:
            folder = await service.create_folder(db, user.id, payload.name, payload.parentId, payload.tags)
        return folder.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Folder creation failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Folder creation failed")


@router.get("/{folder_id}/path", summary="Путь к папке")
@cache(expire=settings.PATH_CACHE_TTL, namespace=PATH_NAMESPACE, key_builder=path_key_builder)
async def get_folder_path(
    folder_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Хлебные крошки от корня до папки"""
    try:
        await service.get_owned(db, user.id, folder_id, is_folder=True)
        return {"path": await breadcrumbs(db, user.id, folder_id)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to resolve folder path: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to resolve folder path")


@router.get("/{folder_id}/download", summary="Скачать папку")
async def download_folder(
    folder_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """ZIP папки; пустая папка даёт архив с одним маркером"""
    try:
        folder = await service.get_owned(db, user.id, folder_id, is_folder=True)
        return zip_response(await build_folder_archive(db, folder))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Folder download failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Folder download failed")
