"""Операции над файлами и папками пользователя"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.file import FileEntity, generate_entity_id
from storage import quota
from storage.archive import resolve_blob_path
from storage.blobs import (
    generate_unique_filename, remove_blob, rename_blob, storage_root, write_blob
)
from storage.categories import FOLDER, file_category, guess_mime, type_filter
from storage.exceptions import Conflict, FileTooLarge, InvalidRequest, NotFound
from storage.guard import folder_guard
from storage.naming import (
    ensure_rename_allowed, find_sibling, normalize_tags, resolve_available_name,
    sanitize_name, split_name, unique_in
)
from storage.tree import build_path, collect_descendants, find_descendant_ids, load_folder_map

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100
FOLDER_CREATE_ATTEMPTS = 3
SORT_COLUMNS = {
    "name": FileEntity.name,
    "size": FileEntity.size,
    "type": FileEntity.type,
    "createdAt": FileEntity.created_at,
    "updatedAt": FileEntity.updated_at,
}


def live_files():
    return select(FileEntity).where(FileEntity.is_deleted.is_(False))


def child_path(parent: Optional[FileEntity], name: str) -> str:
    """Кешированный путь новой папки внутри parent"""
    if parent is None:
        return f"/{name}"
    return f"{parent.path.rstrip('/')}/{name}"


async def get_owned(db: AsyncSession, user_id: int, file_id: str,
                    is_folder: Optional[bool] = None) -> FileEntity:
    stmt = live_files().where(FileEntity.id == file_id).where(FileEntity.uploader_id == user_id)
    if is_folder is not None:
        stmt = stmt.where(FileEntity.is_folder == is_folder)
    result = await db.execute(stmt)
    entity = result.scalars().first()
    if entity is None:
        raise NotFound("Folder not found" if is_folder else "File not found")
    return entity


async def get_parent_folder(db: AsyncSession, user_id: int,
                            parent_id: Optional[str]) -> Optional[FileEntity]:
    """None для корня; иначе живая папка пользователя или NotFound"""
    if not parent_id:
        return None
    return await get_owned(db, user_id, parent_id, is_folder=True)


async def create_folder(db: AsyncSession, user_id: int, name: str,
                        parent_id: Optional[str] = None, tags: Iterable = None) -> FileEntity:
    """
    Явное создание: при совпадении имени подбирается суффикс (n).
    Если параллельный запрос занял имя между проверкой и вставкой,
    имя подбирается заново.
    """
    clean = sanitize_name(name)
    parent = await get_parent_folder(db, user_id, parent_id)
    parent_id = parent.id if parent else None
    parent_path = parent.path if parent else None
    tags = normalize_tags(tags)

    for attempt in range(1, FOLDER_CREATE_ATTEMPTS + 1):
        final_name = await resolve_available_name(db, user_id, parent_id, clean, True)
        folder = FileEntity(
            id=generate_entity_id(),
            name=final_name,
            filename="",
            type=FOLDER,
            size=0,
            is_folder=True,
            parent_id=parent_id,
            uploader_id=user_id,
            path=f"{parent_path.rstrip('/')}/{final_name}" if parent_path else f"/{final_name}",
            tags=tags,
        )
        db.add(folder)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if attempt == FOLDER_CREATE_ATTEMPTS:
                raise
            logger.warning(f"Folder name {final_name} taken concurrently, retrying ({attempt})")
            continue
        logger.info(f"Folder created: {folder.path} ({folder.id}) for user {user_id}")
        return folder


async def ensure_folder(db: AsyncSession, user_id: int, name: str,
                        parent_id: Optional[str] = None, tags: Iterable = None) -> FileEntity:
    """
    create-if-missing: возвращает существующую папку с таким именем
    или создаёт её. Одновременные вызовы с одним ключом дают одну папку.
    """
    clean = sanitize_name(name)
    parent = await get_parent_folder(db, user_id, parent_id)
    parent_id = parent.id if parent else None
    key = (user_id, child_path(parent, clean), parent_id)

    async def create():
        existing = await find_sibling(db, user_id, parent_id, clean, True)
        if existing:
            return existing.id

        folder = FileEntity(
            id=generate_entity_id(),
            name=clean,
            filename="",
            type=FOLDER,
            size=0,
            is_folder=True,
            parent_id=parent_id,
            uploader_id=user_id,
            path=key[1],
            tags=normalize_tags(tags),
        )
        db.add(folder)
        try:
            await db.commit()
        except IntegrityError:
            # Папку успел создать другой инстанс
            await db.rollback()
            existing = await find_sibling(db, user_id, parent_id, clean, True)
            if existing is None:
                raise
            return existing.id
        logger.info(f"Folder created on demand: {folder.path} ({folder.id})")
        return folder.id

    folder_id = await folder_guard.run(key, create)
    return await get_owned(db, user_id, folder_id, is_folder=True)


async def ensure_folder_chain(db: AsyncSession, user_id: int, parts: List[str],
                              parent_id: Optional[str], cache: dict, tags: Iterable = None) -> Optional[str]:
    """Создаёт цепочку папок для загрузки папки; cache: путь -> id"""
    current = parent_id
    current_path = ""
    for part in parts:
        current_path = f"{current_path}/{part}" if current_path else part
        if current_path in cache:
            current = cache[current_path]
            continue
        folder = await ensure_folder(db, user_id, part, current, tags)
        current = folder.id
        cache[current_path] = current
    return current


async def upload_file(db: AsyncSession, user_id: int, name: str, contents: bytes,
                      mime_type: Optional[str] = None, parent_id: Optional[str] = None,
                      tags: Iterable = None) -> FileEntity:
    """Квота -> blob -> запись. Отказ по квоте ничего не пишет."""
    size = len(contents)
    if size > settings.MAX_FILE_SIZE:
        raise FileTooLarge(f"File too large. Max size: {settings.MAX_FILE_SIZE / 1024 / 1024}MB")

    clean = sanitize_name(name)
    parent = await get_parent_folder(db, user_id, parent_id)
    parent_id = parent.id if parent else None
    final_name = await resolve_available_name(db, user_id, parent_id, clean, False)
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = guess_mime(final_name)

    await quota.reserve(db, user_id, size)

    unique_name = generate_unique_filename(final_name)
    blob_path = None
    try:
        blob_path = write_blob(contents, unique_name)
        entity = FileEntity(
            id=generate_entity_id(),
            name=final_name,
            filename=unique_name,
            type=file_category(mime_type, split_name(final_name)[1]),
            mime_type=mime_type,
            size=size,
            is_folder=False,
            parent_id=parent_id,
            uploader_id=user_id,
            path=parent.path if parent else "/",
            tags=normalize_tags(tags),
        )
        db.add(entity)
        await db.commit()
    except Exception:
        await db.rollback()
        if blob_path is not None:
            blob_path.unlink(missing_ok=True)
        raise

    logger.info(f"File uploaded: {final_name} ({size} bytes) as {unique_name}")
    return entity


async def rename_entity(db: AsyncSession, user_id: int, file_id: str, new_name: str,
                        tags: Optional[Iterable] = None) -> FileEntity:
    entity = await get_owned(db, user_id, file_id)
    clean = sanitize_name(new_name)

    if clean != entity.name:
        await ensure_rename_allowed(db, entity, clean)

    renamed_blob = None
    if not entity.is_folder and entity.filename:
        old_ext = split_name(entity.filename)[1]
        new_ext = split_name(clean)[1].lower()
        if old_ext != new_ext:
            # Копии из шар делят blob - его не трогаем
            shared = await db.execute(
                select(func.count())
                .select_from(FileEntity)
                .where(FileEntity.filename == entity.filename)
                .where(FileEntity.id != entity.id)
                .where(FileEntity.is_deleted.is_(False))
            )
            if shared.scalar() == 0:
                new_filename = generate_unique_filename(clean)
                if rename_blob(entity.filename, new_filename):
                    renamed_blob = (entity.filename, new_filename)
                    entity.filename = new_filename

    entity.name = clean
    if entity.is_folder:
        parent = await get_parent_folder(db, user_id, entity.parent_id)
        entity.path = child_path(parent, clean)
    if tags is not None:
        entity.tags = normalize_tags(tags)
    entity.updated_at = datetime.utcnow()

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        if renamed_blob:
            rename_blob(renamed_blob[1], renamed_blob[0])
        raise

    logger.info(f"Renamed {entity.id} to {clean}")
    return entity


async def move_entities(db: AsyncSession, user_id: int, file_ids: List[str],
                        target_folder_id: Optional[str]) -> int:
    target = await get_parent_folder(db, user_id, target_folder_id)
    target_id = target.id if target else None

    result = await db.execute(
        live_files().where(FileEntity.id.in_(file_ids)).where(FileEntity.uploader_id == user_id)
    )
    items = list(result.scalars().all())
    if not items:
        return 0

    if target is not None:
        folder_ids = [item.id for item in items if item.is_folder]
        if target.id in folder_ids or target.id in await find_descendant_ids(db, user_id, folder_ids):
            raise InvalidRequest("Cannot move a folder into itself or its subfolder")

    moving_ids = {item.id for item in items}
    incoming = set()
    for item in items:
        key = (item.name, item.is_folder)
        existing = await find_sibling(db, user_id, target_id, item.name, item.is_folder, exclude_id=item.id)
        if (existing and existing.id not in moving_ids) or key in incoming:
            raise Conflict(f'Target folder already contains "{item.name}"')
        incoming.add(key)

    now = datetime.utcnow()
    for item in items:
        item.parent_id = target_id
        item.path = child_path(target, item.name) if item.is_folder else (target.path if target else "/")
        item.updated_at = now

    await db.commit()
    logger.info(f"Moved {len(items)} items to {target_id or 'root'}")
    return len(items)


async def delete_entities(db: AsyncSession, user_id: int, file_ids: List[str]) -> int:
    """Мягкое удаление вместе с поддеревом; квота освобождается"""
    result = await db.execute(
        live_files().where(FileEntity.id.in_(file_ids)).where(FileEntity.uploader_id == user_id)
    )
    items = list(result.scalars().all())
    if not items:
        return 0

    all_ids = {item.id for item in items}
    all_ids |= await find_descendant_ids(db, user_id, [item.id for item in items if item.is_folder])

    result = await db.execute(
        live_files().where(FileEntity.id.in_(all_ids)).where(FileEntity.uploader_id == user_id)
    )
    rows = list(result.scalars().all())
    released = sum(row.size or 0 for row in rows if not row.is_folder)

    await db.execute(
        update(FileEntity)
        .where(FileEntity.id.in_(all_ids))
        .where(FileEntity.uploader_id == user_id)
        .values(is_deleted=True, deleted_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    await quota.release(db, user_id, released)
    await db.commit()

    for row in rows:
        if not row.is_folder and row.filename:
            await remove_blob(db, row.filename)

    logger.info(f"Deleted {len(rows)} items for user {user_id}, released {released} bytes")
    return len(rows)


async def list_entities(db: AsyncSession, user_id: int, folder_id: Optional[str] = None,
                        category: Optional[str] = None, page: int = 1, page_size: int = 50,
                        sort_by: str = "createdAt", sort_order: str = "desc") -> dict:
    stmt = live_files().where(FileEntity.uploader_id == user_id)
    if category:
        stmt = stmt.where(type_filter(category))
    else:
        await get_parent_folder(db, user_id, folder_id)
        if folder_id:
            stmt = stmt.where(FileEntity.parent_id == folder_id)
        else:
            stmt = stmt.where(FileEntity.parent_id.is_(None))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar()

    column = SORT_COLUMNS.get(sort_by, FileEntity.created_at)
    order = column.asc() if sort_order.lower() == "asc" else column.desc()
    result = await db.execute(
        stmt.order_by(FileEntity.is_folder.desc(), order)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = list(result.scalars().all())

    if category:
        folder_map = await load_folder_map(db, user_id)
        data = [item.to_dict(build_path(item.parent_id, folder_map)) for item in items]
    else:
        data = [item.to_dict() for item in items]

    return {"items": data, "total": total, "page": page, "pageSize": page_size}


async def search_entities(db: AsyncSession, user_id: int, query: str, mode: str = "name",
                          category: Optional[str] = None, tags: Optional[List[str]] = None,
                          include_folders: bool = True) -> List[dict]:
    term = (query or "").strip()
    stmt = live_files().where(FileEntity.uploader_id == user_id)
    if mode != "tag" and term:
        stmt = stmt.where(FileEntity.name.ilike(f"%{term}%"))
    if not include_folders:
        stmt = stmt.where(FileEntity.is_folder.is_(False))
    if category:
        stmt = stmt.where(type_filter(category))
    stmt = stmt.order_by(FileEntity.is_folder.desc(), FileEntity.updated_at.desc())

    # Фильтр по тегам делаем в Python: JSON-массивы по-разному индексируются в диалектах
    wanted = normalize_tags(tags)
    needs_tag_filter = mode == "tag" or bool(wanted)
    if not needs_tag_filter:
        stmt = stmt.limit(SEARCH_LIMIT)

    result = await db.execute(stmt)
    items = []
    for item in result.scalars():
        item_tags = item.tags or []
        if mode == "tag" and term not in item_tags:
            continue
        if wanted and not any(tag in item_tags for tag in wanted):
            continue
        items.append(item)
        if len(items) >= SEARCH_LIMIT:
            break

    folder_map = await load_folder_map(db, user_id)
    return [item.to_dict(build_path(item.parent_id, folder_map)) for item in items]


async def list_tags(db: AsyncSession, user_id: int) -> List[str]:
    result = await db.execute(
        select(FileEntity.tags)
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
    )
    tags = set()
    for row_tags in result.scalars():
        tags.update(row_tags or [])
    return sorted(tags)


async def check_name_conflicts(db: AsyncSession, user_id: int, folder_id: Optional[str],
                               names: List[str]) -> List[str]:
    parent_id = None if folder_id in (None, "", "root") else folder_id
    stmt = (
        select(FileEntity.name)
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
        .where(FileEntity.name.in_(names))
    )
    if parent_id is None:
        stmt = stmt.where(FileEntity.parent_id.is_(None))
    else:
        stmt = stmt.where(FileEntity.parent_id == parent_id)
    result = await db.execute(stmt)
    return sorted(set(result.scalars().all()))


def _copy_row(source: FileEntity, user_id: int, name: str, parent: Optional[FileEntity],
              filename: str = None) -> FileEntity:
    if source.is_folder:
        return FileEntity(
            id=generate_entity_id(),
            name=name,
            filename="",
            type=FOLDER,
            size=0,
            is_folder=True,
            parent_id=parent.id if parent else None,
            uploader_id=user_id,
            path=child_path(parent, name),
            tags=list(source.tags or []),
        )
    return FileEntity(
        id=generate_entity_id(),
        name=name,
        filename=filename or "",
        url=source.url,
        type=source.type,
        mime_type=source.mime_type,
        size=source.size or 0,
        is_folder=False,
        parent_id=parent.id if parent else None,
        uploader_id=user_id,
        path=parent.path if parent else "/",
        tags=list(source.tags or []),
    )


def _blob_locator(source: FileEntity) -> str:
    """Локатор для копии: записи старых форматов находятся через fallback"""
    if source.filename:
        return source.filename
    blob_path = resolve_blob_path(source)
    if blob_path is None:
        return ""
    return blob_path.relative_to(storage_root()).as_posix()


async def copy_into_drive(db: AsyncSession, user_id: int, source: FileEntity,
                          target_folder_id: Optional[str] = None) -> dict:
    """
    Копирует файл или поддерево в диск пользователя, переиспользуя blob'ы.
    Квота резервируется одним шагом на весь объём. Если имя верхней папки
    заняли параллельно, копирование повторяется с новым именем.
    """
    source_id = source.id
    for attempt in range(1, FOLDER_CREATE_ATTEMPTS + 1):
        try:
            return await _copy_once(db, user_id, source, target_folder_id)
        except IntegrityError:
            await db.rollback()
            if attempt == FOLDER_CREATE_ATTEMPTS:
                raise
            logger.warning(f"Copy of {source_id} collided on folder name, retrying ({attempt})")
            await db.refresh(source)


async def _copy_once(db: AsyncSession, user_id: int, source: FileEntity,
                     target_folder_id: Optional[str]) -> dict:
    target = await get_parent_folder(db, user_id, target_folder_id)
    target_id = target.id if target else None
    top_name = await resolve_available_name(db, user_id, target_id, source.name, source.is_folder)

    if not source.is_folder:
        total = source.size or 0
        await quota.reserve(db, user_id, total)
        copy = _copy_row(source, user_id, top_name, target, _blob_locator(source))
        db.add(copy)
        await db.commit()
        logger.info(f"Copied file {source.id} -> {copy.id} for user {user_id}")
        return {"item": copy.to_dict(), "savedFilesCount": 1, "totalSize": total}

    entries = await collect_descendants(db, source)
    total = sum(entry.entity.size or 0 for entry in entries if not entry.is_folder)
    await quota.reserve(db, user_id, total)

    new_root = _copy_row(source, user_id, top_name, target)
    db.add(new_root)
    mapping = {source.id: new_root}
    taken = {}
    saved = 0
    # collect_descendants отдаёт папку раньше её содержимого
    for entry in entries:
        parent = mapping.get(entry.entity.parent_id)
        if parent is None:
            continue
        names = taken.setdefault((parent.id, entry.is_folder), set())
        name = unique_in(names, entry.name, entry.is_folder)
        copy = _copy_row(
            entry.entity, user_id, name, parent,
            None if entry.is_folder else _blob_locator(entry.entity),
        )
        db.add(copy)
        if entry.is_folder:
            mapping[entry.id] = copy
        else:
            saved += 1

    await db.commit()
    logger.info(f"Copied folder {source.id} -> {new_root.id}: {saved} files, {total} bytes")
    return {"item": new_root.to_dict(), "savedFilesCount": saved, "totalSize": total}
