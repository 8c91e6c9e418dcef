"""Плоское хранилище blob'ов в STORAGE_DIR"""
import logging
import os
import re
import secrets
import string
import time
from pathlib import Path
from typing import Iterator, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.file import FileEntity
from .exceptions import RangeNotSatisfiable
from .naming import split_name

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")
RANDOM_ALPHABET = string.ascii_lowercase + string.digits


def storage_root() -> Path:
    return Path(settings.STORAGE_DIR)


def generate_unique_filename(name: str) -> str:
    """<timestamp ms>-<8 случайных символов>.<ext>"""
    _, ext = split_name(name)
    suffix = "".join(secrets.choice(RANDOM_ALPHABET) for _ in range(8))
    return f"{int(time.time() * 1000)}-{suffix}{ext.lower()}"


def inside_root(candidate: Path, root: Path) -> bool:
    try:
        candidate.resolve().relative_to(root.resolve())
        return True
    except ValueError:
        return False


def write_blob(contents: bytes, filename: str, root: Path = None) -> Path:
    root = root or storage_root()
    root.mkdir(exist_ok=True, parents=True)
    file_path = root / filename
    with open(file_path, "wb") as f:
        f.write(contents)
    return file_path


def rename_blob(old_filename: str, new_filename: str, root: Path = None) -> bool:
    root = root or storage_root()
    source = root / old_filename
    if not old_filename or not source.is_file():
        return False
    os.replace(source, root / new_filename)
    return True


async def is_referenced(db: AsyncSession, filename: str) -> bool:
    """Есть ли живые записи с этим локатором (копии из шар делят blob)"""
    result = await db.execute(
        select(func.count())
        .select_from(FileEntity)
        .where(FileEntity.filename == filename)
        .where(FileEntity.is_deleted.is_(False))
    )
    return result.scalar() > 0


async def remove_blob(db: AsyncSession, filename: str, root: Path = None) -> bool:
    if not filename:
        return False
    if await is_referenced(db, filename):
        return False
    root = root or storage_root()
    file_path = root / filename
    if not inside_root(file_path, root) or not file_path.is_file():
        return False
    try:
        file_path.unlink()
        logger.info(f"Removed blob: {file_path}")
        return True
    except OSError as e:
        logger.error(f"Failed to remove blob {file_path}: {str(e)}")
        return False


def parse_range(header: Optional[str], size: int) -> Optional[Tuple[int, int]]:
    """
    Разбирает заголовок Range (один диапазон).
    Возвращает (start, end) включительно или None, если заголовка нет.
    """
    if not header:
        return None
    match = RANGE_RE.match(header.strip())
    if not match:
        raise RangeNotSatisfiable(headers={"Content-Range": f"bytes */{size}"})

    first, last = match.groups()
    if first == "" and last == "":
        raise RangeNotSatisfiable(headers={"Content-Range": f"bytes */{size}"})

    if first == "":
        # bytes=-N: последние N байт
        length = int(last)
        if length == 0 or size == 0:
            raise RangeNotSatisfiable(headers={"Content-Range": f"bytes */{size}"})
        return max(size - length, 0), size - 1

    start = int(first)
    end = int(last) if last else size - 1
    if start >= size or end < start:
        raise RangeNotSatisfiable(headers={"Content-Range": f"bytes */{size}"})
    return start, min(end, size - 1)


def iter_blob(file_path: Path, start: int = 0, end: Optional[int] = None,
              chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    with open(file_path, "rb") as f:
        f.seek(start)
        remaining = None if end is None else end - start + 1
        for chunk in iter(lambda: f.read(chunk_size if remaining is None else min(chunk_size, remaining)), b""):
            yield chunk
            if remaining is not None:
                remaining -= len(chunk)
                if remaining <= 0:
                    break
