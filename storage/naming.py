import os
import re
import uuid
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.file import FileEntity
from .exceptions import Conflict, InvalidRequest

INVALID_CHARS = re.compile(r'[/\\?%*:|"<>\x00-\x1f]')
MAX_NAME_LENGTH = 255


def sanitize_name(name: str) -> str:
    """Заменяет небезопасные символы на '-' и обрезает пробелы"""
    clean = INVALID_CHARS.sub("-", name or "").strip()
    if not clean or clean in (".", ".."):
        raise InvalidRequest("Name must not be empty")
    if len(clean) > MAX_NAME_LENGTH:
        raise InvalidRequest(f"Name must not exceed {MAX_NAME_LENGTH} characters")
    return clean


def split_name(name: str) -> tuple:
    """Делит имя на основу и расширение ('.bashrc' расширения не имеет)"""
    return os.path.splitext(name)


def suffixed_name(name: str, counter, is_folder: bool = False) -> str:
    if is_folder:
        return f"{name}({counter})"
    stem, ext = split_name(name)
    return f"{stem}({counter}){ext}"


def unique_in(taken: set, name: str, is_folder: bool = False) -> str:
    """Свободное имя относительно уже занятых (без БД), добавляет его в taken"""
    candidate = name
    counter = 1
    while candidate in taken:
        candidate = suffixed_name(name, counter, is_folder)
        counter += 1
    taken.add(candidate)
    return candidate


async def find_sibling(
    db: AsyncSession,
    user_id: int,
    parent_id: Optional[str],
    name: str,
    is_folder: bool,
    exclude_id: Optional[str] = None,
) -> Optional[FileEntity]:
    stmt = (
        select(FileEntity)
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.name == name)
        .where(FileEntity.is_folder == is_folder)
        .where(FileEntity.is_deleted.is_(False))
    )
    if parent_id is None:
        stmt = stmt.where(FileEntity.parent_id.is_(None))
    else:
        stmt = stmt.where(FileEntity.parent_id == parent_id)
    if exclude_id is not None:
        stmt = stmt.where(FileEntity.id != exclude_id)
    result = await db.execute(stmt.limit(1))
    return result.scalars().first()


async def resolve_available_name(
    db: AsyncSession,
    user_id: int,
    parent_id: Optional[str],
    name: str,
    is_folder: bool,
    max_attempts: int = None,
) -> str:
    """
    Подбирает свободное имя для create/copy/upload:
    name -> name(1) -> name(2) ... После max_attempts переходит на
    случайный суффикс.
    """
    if max_attempts is None:
        max_attempts = settings.NAME_SUFFIX_ATTEMPTS

    if not await find_sibling(db, user_id, parent_id, name, is_folder):
        return name

    for counter in range(1, max_attempts + 1):
        candidate = suffixed_name(name, counter, is_folder)
        if not await find_sibling(db, user_id, parent_id, candidate, is_folder):
            return candidate

    while True:
        candidate = suffixed_name(name, uuid.uuid4().hex[:8], is_folder)
        if not await find_sibling(db, user_id, parent_id, candidate, is_folder):
            return candidate


async def ensure_rename_allowed(
    db: AsyncSession, entity: FileEntity, new_name: str
) -> None:
    """Явное переименование не подбирает суффиксы, а отказывает"""
    existing = await find_sibling(
        db, entity.uploader_id, entity.parent_id, new_name, entity.is_folder, exclude_id=entity.id
    )
    if existing:
        kind = "folder" if entity.is_folder else "file"
        raise Conflict(f'A {kind} named "{new_name}" already exists')


def normalize_tags(tags: Optional[Iterable]) -> list:
    """Убирает пустые и повторяющиеся теги, сохраняя порядок"""
    if not tags:
        return []
    seen = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen
