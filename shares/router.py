from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from auth.dependencies import get_current_user
from config.database import get_db
from config.settings import settings
from files.router import blob_response, zip_response
from models.user import User
from storage import sharing
from storage.archive import build_archive
from storage.exceptions import InvalidRequest, NotFound
from storage.tree import collect_descendants, get_children

router = APIRouter(prefix="/share", tags=["share"])
logger = logging.getLogger(__name__)


class ShareCreate(BaseModel):
    fileIds: List[str]
    expiryDays: int = 7
    extractCode: Optional[str] = None
    accessLimit: Optional[int] = None
    # autoFillCode - старое имя поля
    autoRefreshCode: bool = Field(False, validation_alias=AliasChoices("autoRefreshCode", "autoFillCode"))


class ShareDelete(BaseModel):
    shareIds: List[int]


class ShareAccess(BaseModel):
    shareCode: str
    extractCode: Optional[str] = None


class ShareItemAccess(ShareAccess):
    fileId: Optional[str] = None
    folderId: Optional[str] = None


class ShareSave(ShareAccess):
    fileId: str
    targetFolderId: Optional[str] = None


def request_fingerprint(request: Request) -> str:
    """Отпечаток клиента: IP (с учётом прокси) + user-agent"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.headers.get("x-real-ip") or (request.client.host if request.client else None)
    return sharing.client_fingerprint(ip, request.headers.get("user-agent"))


def base_url_for(request: Request) -> str:
    return settings.SHARE_BASE_URL or str(request.base_url)


async def open_for(db: AsyncSession, payload: ShareAccess, request: Request):
    """Проверка доступа для вложенных операций (без учёта посещения)"""
    return await sharing.open_share(
        db, payload.shareCode, payload.extractCode, request_fingerprint(request)
    )


@router.post("", status_code=status.HTTP_201_CREATED, summary="Создать ссылку")
async def create_share(
    payload: ShareCreate,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """expiryDays = -1 - ссылка без срока действия"""
    try:
        share = await sharing.create_share(
            db, user.id, payload.fileIds, payload.expiryDays,
            payload.extractCode, payload.accessLimit, payload.autoRefreshCode
        )
        return sharing.share_to_dict(share, base_url_for(request))
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Share creation failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Share creation failed")


@router.get("", summary="Мои ссылки")
async def list_shares(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        base_url = base_url_for(request)
        shares = await sharing.list_shares(db, user.id)
        return {"items": [sharing.share_to_dict(share, base_url) for share in shares]}
    except Exception as e:
        logger.error(f"Failed to list shares: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve shares")


@router.delete("", summary="Удалить ссылки")
async def delete_shares(
    payload: ShareDelete,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return {"deleted": await sharing.delete_shares(db, user.id, payload.shareIds)}
    except Exception as e:
        await db.rollback()
        logger.error(f"Share deletion failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Share deletion failed")


@router.post("/verify", summary="Открыть ссылку")
async def verify_share(
    payload: ShareAccess,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Проверяет код и засчитывает посещение (один раз на клиента)"""
    try:
        share = await sharing.open_share(
            db, payload.shareCode, payload.extractCode,
            request_fingerprint(request), count_visit=True
        )
        return sharing.share_to_dict(share, base_url_for(request), include_code=False)
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Share verification failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Share verification failed")


@router.post("/folder", summary="Содержимое расшаренной папки")
async def share_folder(
    payload: ShareItemAccess,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    if not payload.folderId:
        raise InvalidRequest("folderId is required")
    try:
        share = await open_for(db, payload, request)
        folder = await sharing.authorize_entity(db, share, payload.folderId)
        if not folder.is_folder:
            raise InvalidRequest("Not a folder")
        children = await get_children(db, folder.id)
        return {"folder": folder.to_dict(), "items": [child.to_dict() for child in children]}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list shared folder: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve shared folder")


@router.post("/download", summary="Скачать файл по ссылке")
async def share_download(
    payload: ShareItemAccess,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """Без fileId скачивается единственный корневой файл шары"""
    try:
        share = await open_for(db, payload, request)
        if payload.fileId:
            entity = await sharing.authorize_entity(db, share, payload.fileId)
        else:
            roots = sharing.live_roots(share)
            if len(roots) != 1:
                raise InvalidRequest("fileId is required")
            entity = roots[0]
        if entity.is_folder:
            raise InvalidRequest("Use download-folder for folders")
        return blob_response(entity)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Shared download failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="File download failed")


@router.post("/download-folder", summary="Скачать папку по ссылке")
async def share_download_folder(
    payload: ShareItemAccess,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    folder_id = payload.folderId or payload.fileId
    if not folder_id:
        raise InvalidRequest("folderId is required")
    try:
        share = await open_for(db, payload, request)
        folder = await sharing.authorize_entity(db, share, folder_id)
        if not folder.is_folder:
            raise NotFound("Folder not found in share")
        entries = await collect_descendants(db, folder)
        if not entries:
            raise InvalidRequest("Folder is empty")
        return zip_response(build_archive(folder.name, entries))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Shared folder download failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Folder download failed")


@router.post("/save", summary="Сохранить в свой диск")
async def share_save(
    payload: ShareSave,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Копия получает свободное имя в целевой папке; квота списывается сразу за всё"""
    user_id = user.id
    try:
        share = await open_for(db, payload, request)
        return await sharing.save_to_drive(db, user_id, share, payload.fileId, payload.targetFolderId)
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Save from share failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Save failed")
