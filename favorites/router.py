from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from auth.dependencies import get_current_user
from config.database import get_db
from models.user import User
from storage.exceptions import InvalidRequest
from . import service

router = APIRouter(prefix="/favorites", tags=["favorites"])
logger = logging.getLogger(__name__)


class FavoriteFolderCreate(BaseModel):
    name: str
    description: Optional[str] = None
    isDefault: bool = False


class FavoriteFolderUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    isDefault: Optional[bool] = None


class FavoriteItems(BaseModel):
    """fileId для одного файла или fileIds для пачки"""
    fileId: Optional[str] = None
    fileIds: List[str] = []
    folderId: Optional[str] = None

    def ids(self) -> List[str]:
        if self.fileId:
            return [self.fileId]
        if not self.fileIds:
            raise InvalidRequest("No files selected")
        return self.fileIds


@router.get("", summary="Файлы в избранном")
async def list_favorites(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return await service.list_favorites(db, user.id, folder_id, page, page_size)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list favorites: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve favorites")


@router.post("/add", summary="Добавить в избранное")
async def add_to_favorites(
    payload: FavoriteItems,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Один файл - {success}, пачка - {count} новых закладок"""
    try:
        count = await service.add_favorites(db, user.id, payload.ids(), payload.folderId)
        return {"success": True} if payload.fileId else {"count": count}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to add favorites: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to add to favorites")


@router.post("/remove", summary="Убрать из избранного")
async def remove_from_favorites(
    payload: FavoriteItems,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Без folderId файл убирается из всех папок избранного"""
    try:
        count = await service.remove_favorites(db, user.id, payload.ids(), payload.folderId)
        return {"success": count > 0} if payload.fileId else {"count": count}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to remove favorites: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to remove from favorites")


@router.get("/folders", summary="Папки избранного")
async def list_favorite_folders(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        folders = await service.list_folders(db, user.id)
        return {"folders": [folder.to_dict(count) for folder, count in folders]}
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to list favorite folders: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve favorite folders")


@router.post("/folders", status_code=status.HTTP_201_CREATED, summary="Создать папку избранного")
async def create_favorite_folder(
    payload: FavoriteFolderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        folder = await service.create_folder(db, user.id, payload.name, payload.description, payload.isDefault)
        return {"folder": folder.to_dict(0)}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to create favorite folder: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create favorite folder")


@router.patch("/folders/{folder_id}", summary="Изменить папку избранного")
async def update_favorite_folder(
    folder_id: str,
    payload: FavoriteFolderUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        folder = await service.update_folder(
            db, user.id, folder_id, payload.name, payload.description, payload.isDefault
        )
        return {"folder": folder.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to update favorite folder {folder_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update favorite folder")


@router.delete("/folders/{folder_id}", summary="Удалить папку избранного")
async def delete_favorite_folder(
    folder_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Закладки переезжают в папку по умолчанию"""
    try:
        moved = await service.delete_folder(db, user.id, folder_id)
        return {"success": True, "moved": moved}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Failed to delete favorite folder {folder_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete favorite folder")
