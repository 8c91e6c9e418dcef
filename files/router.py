from fastapi import APIRouter, Request, UploadFile, File, Depends, HTTPException, Query, Form
from fastapi.responses import FileResponse, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import List, Optional
import io
import json
import logging

from auth.dependencies import get_current_user
from config.database import get_db
from folders.cache import invalidate_paths
from models.user import User
from models.file import FileEntity
from storage import activity, quota
from storage.archive import (
    ArchiveResult, build_archive, build_flat_archive, content_disposition, resolve_blob_path
)
from storage.blobs import iter_blob, parse_range
from storage.exceptions import InvalidRequest, NotFound
from storage.tree import collect_descendants
from . import service

router = APIRouter(prefix="/files", tags=["files"])
logger = logging.getLogger(__name__)


class FileIdsRequest(BaseModel):
    fileIds: List[str]


class RenameRequest(BaseModel):
    newName: str
    tags: Optional[List[str]] = None


class MoveRequest(BaseModel):
    fileIds: List[str]
    targetFolderId: Optional[str] = None


class NameConflictsRequest(BaseModel):
    folderId: Optional[str] = None
    names: List[str]


class RecordAccessRequest(BaseModel):
    fileId: str


def parse_tags(raw: Optional[str]) -> List[str]:
    """Теги приходят JSON-строкой в multipart; битый JSON игнорируется"""
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except ValueError:
        logger.warning(f"Failed to parse tags: {raw}")
        return []
    return tags if isinstance(tags, list) else []


def zip_response(result: ArchiveResult) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(result.content),
        media_type="application/zip",
        headers={
            "Content-Disposition": content_disposition(result.filename),
            "Content-Length": str(len(result.content)),
        }
    )


def blob_response(entity: FileEntity) -> FileResponse:
    blob_path = resolve_blob_path(entity)
    if blob_path is None:
        raise NotFound("File exists in database but missing in storage")
    return FileResponse(
        blob_path,
        media_type=entity.mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(entity.name)}
    )


@router.post("", summary="Загрузить файлы")
async def upload_files(
    file: List[UploadFile] = File(...),
    parentId: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    paths: Optional[List[str]] = Form(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Загружает один или несколько файлов.
    paths - относительные пути при загрузке папки ("Dir/Sub/a.txt"),
    недостающие папки создаются по пути.
    Ошибка одиночной загрузки возвращается как есть, при пакетной
    неудачные файлы перечисляются в failed.
    """
    tag_list = parse_tags(tags)
    paths = paths or []
    # после rollback объект user истекает
    user_id = user.id
    try:
        if len(file) == 1 and not paths:
            upload = file[0]
            entity = await service.upload_file(
                db, user_id, upload.filename, await upload.read(),
                upload.content_type, parentId, tag_list
            )
            return {"items": [entity.to_dict()], "failed": []}

        uploaded = []
        failed = []
        folder_cache = {}
        for index, upload in enumerate(file):
            name = upload.filename
            try:
                target_id = parentId
                relative = paths[index] if index < len(paths) else None
                if relative:
                    parts = [part for part in relative.replace("\\", "/").split("/") if part]
                    if parts:
                        name = parts[-1]
                        target_id = await service.ensure_folder_chain(
                            db, user_id, parts[:-1], parentId, folder_cache, tag_list
                        )
                entity = await service.upload_file(
                    db, user_id, name, await upload.read(),
                    upload.content_type, target_id, tag_list
                )
                uploaded.append(entity.to_dict())
            except HTTPException as e:
                await db.rollback()
                logger.warning(f"Upload of {name} rejected: {e.detail}")
                failed.append({"name": name, "error": e.detail})

        return {
            "items": uploaded,
            "failed": failed,
            "stats": {"totalFiles": len(file), "uploadedFiles": len(uploaded)},
        }

    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Upload failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="File upload failed")


@router.get("", summary="Получить список файлов")
async def list_files(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200, alias="pageSize"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Содержимое папки (или корня). С параметром type - все файлы
    категории по всему диску, у каждого есть fullPath.
    """
    try:
        return await service.list_entities(
            db, user.id, folder_id, type, page, page_size, sort_by, sort_order
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list files: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve files")


@router.get("/search", summary="Поиск файлов")
async def search_files(
    q: str = Query(""),
    mode: str = Query("name"),
    type: Optional[str] = Query(None),
    tags: Optional[List[str]] = Query(None),
    include_folders: bool = Query(True, alias="includeFolders"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if mode not in ("name", "tag"):
        raise InvalidRequest("mode must be 'name' or 'tag'")
    try:
        items = await service.search_entities(db, user.id, q, mode, type, tags, include_folders)
        return {"items": items, "total": len(items)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Search failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Search failed")


@router.get("/tags", summary="Все теги пользователя")
async def list_tags(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        return {"tags": await service.list_tags(db, user.id)}
    except Exception as e:
        logger.error(f"Failed to list tags: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve tags")


@router.post("/check-name-conflicts", summary="Проверить конфликты имён")
async def check_name_conflicts(
    payload: NameConflictsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Какие из имён уже заняты в папке (перед загрузкой)"""
    try:
        conflicts = await service.check_name_conflicts(db, user.id, payload.folderId, payload.names)
        return {"conflicts": conflicts, "hasConflicts": bool(conflicts)}
    except Exception as e:
        logger.error(f"Name conflict check failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Name conflict check failed")


@router.get("/quota", summary="Использование квоты")
async def get_quota(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await db.refresh(user)
    return quota.usage(user)


@router.post("/move", summary="Переместить файлы")
async def move_files(
    payload: MoveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        moved = await service.move_entities(db, user.id, payload.fileIds, payload.targetFolderId)
        await invalidate_paths()
        return {"moved": moved}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Move failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Move failed")


@router.post("/delete", summary="Удалить файлы")
async def delete_files(
    payload: FileIdsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Мягкое удаление вместе с содержимым папок"""
    try:
        deleted = await service.delete_entities(db, user.id, payload.fileIds)
        await invalidate_paths()
        return {"deleted": deleted}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Delete failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Delete failed")


@router.post("/download", summary="Скачать файлы")
async def download_files(
    payload: FileIdsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Один файл - сам blob, одна папка - её ZIP,
    несколько элементов - files.zip
    """
    if not payload.fileIds:
        raise InvalidRequest("No files selected")
    try:
        result = await db.execute(
            select(FileEntity)
            .where(FileEntity.id.in_(payload.fileIds))
            .where(FileEntity.uploader_id == user.id)
            .where(FileEntity.is_deleted.is_(False))
        )
        items = list(result.scalars().all())
        if not items:
            raise NotFound()

        if len(items) == 1:
            item = items[0]
            if not item.is_folder:
                return blob_response(item)
            entries = await collect_descendants(db, item)
            if not entries:
                raise InvalidRequest("Folder is empty")
            return zip_response(build_archive(item.name, entries))

        return zip_response(await build_flat_archive(db, items, "files"))

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Download failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="File download failed")


@router.get("/recent", summary="Недавние файлы")
async def get_recent_files(
    limit: Optional[int] = Query(None, ge=1),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Последние открытые файлы, не больше RECENT_FILES_MAX"""
    try:
        files = await activity.recent_files(db, user.id, limit)
        return {"files": [entity.to_dict() for entity in files]}
    except Exception as e:
        logger.error(f"Recent files failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load recent files")


@router.post("/recent/record", summary="Отметить открытие файла")
async def record_file_access(
    payload: RecordAccessRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user_id = user.id
    try:
        entity = await service.get_owned(db, user_id, payload.fileId, is_folder=False)
        await activity.record_access(db, user_id, entity)
        return {"success": True}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Access record failed for user {user_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record access")


@router.get("/{file_id}", summary="Метаданные файла")
async def get_file(
    file_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    entity = await service.get_owned(db, user.id, file_id)
    return entity.to_dict()


@router.post("/{file_id}/rename", summary="Переименовать")
async def rename_file(
    file_id: str,
    payload: RenameRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Занятое имя - 409, суффиксы здесь не подбираются"""
    try:
        entity = await service.rename_entity(db, user.id, file_id, payload.newName, payload.tags)
        if entity.is_folder:
            await invalidate_paths()
        return entity.to_dict()
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Rename failed: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Rename failed")


@router.get("/{file_id}/content", summary="Содержимое файла")
async def get_content(
    file_id: str,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Сырой blob для предпросмотра, поддерживает Range"""
    entity = await service.get_owned(db, user.id, file_id, is_folder=False)
    blob_path = resolve_blob_path(entity)
    if blob_path is None:
        raise NotFound("File exists in database but missing in storage")

    size = blob_path.stat().st_size
    headers = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": content_disposition(entity.name, "inline"),
    }
    byte_range = parse_range(request.headers.get("range"), size)
    if byte_range is None:
        headers["Content-Length"] = str(size)
        return StreamingResponse(
            iter_blob(blob_path),
            media_type=entity.mime_type or "application/octet-stream",
            headers=headers
        )

    start, end = byte_range
    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    headers["Content-Length"] = str(end - start + 1)
    return StreamingResponse(
        iter_blob(blob_path, start, end),
        status_code=206,
        media_type=entity.mime_type or "application/octet-stream",
        headers=headers
    )


@router.get("/{file_id}/access-history", summary="История открытий файла")
async def get_access_history(
    file_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await service.get_owned(db, user.id, file_id)
    return await activity.access_history(db, file_id, page, limit)
