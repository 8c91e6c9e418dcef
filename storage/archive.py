"""Упаковка папок в ZIP"""
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional
from urllib.parse import quote, urlparse
from zipfile import ZipFile, ZIP_DEFLATED

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from models.file import FileEntity
from .blobs import inside_root, storage_root
from .naming import unique_in
from .tree import TreeEntry, collect_descendants

logger = logging.getLogger(__name__)

EMPTY_MARKER = ".empty"


@dataclass
class ArchiveResult:
    content: bytes
    filename: str
    entry_count: int
    skipped: List[str] = field(default_factory=list)


def resolve_blob_path(entity: FileEntity, root: Path = None) -> Optional[Path]:
    """
    Ищет blob записи: filename -> id -> basename(url) -> path + name.
    Старые записи писали локатор по-разному, поэтому кандидатов несколько.
    """
    root = root or storage_root()
    candidates = []
    if entity.filename:
        candidates.append(root / entity.filename)
    if entity.id:
        candidates.append(root / entity.id)
    if entity.url:
        basename = PurePosixPath(urlparse(entity.url).path).name
        if basename:
            candidates.append(root / basename)
    if entity.path and entity.name:
        candidates.append(root / entity.path.lstrip("/") / entity.name)

    for candidate in candidates:
        if inside_root(candidate, root) and candidate.is_file():
            return candidate
    return None


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    quoted = quote(filename, safe="")
    return f"{disposition}; filename=\"{quoted}\"; filename*=UTF-8''{quoted}"


def _write_entries(zip_file: ZipFile, entries: Iterable[TreeEntry], root: Path,
                   taken: set, skipped: List[str]) -> int:
    count = 0
    for entry in entries:
        if entry.is_folder:
            if entry.is_empty:
                zip_file.writestr(unique_in(taken, f"{entry.relative_path}/{EMPTY_MARKER}"), b"")
                count += 1
            continue

        blob_path = resolve_blob_path(entry.entity, root)
        if blob_path is None:
            logger.warning(f"Blob for {entry.id} ({entry.relative_path}) not found, skipping")
            skipped.append(entry.id)
            continue
        try:
            with open(blob_path, "rb") as f:
                data = f.read()
        except OSError as e:
            logger.warning(f"Failed to read blob {blob_path}: {str(e)}")
            skipped.append(entry.id)
            continue

        zip_file.writestr(unique_in(taken, entry.relative_path), data)
        count += 1
    return count


def build_archive(root_name: str, entries: List[TreeEntry], root: Path = None,
                  compression_level: int = None) -> ArchiveResult:
    """
    ZIP для папки root_name с перечисленными потомками.
    Пустая папка даёт ровно один маркер "<root>/.empty".
    """
    root = root or storage_root()
    if compression_level is None:
        compression_level = settings.ARCHIVE_COMPRESSION_LEVEL

    buffer = io.BytesIO()
    skipped: List[str] = []
    taken: set = set()
    with ZipFile(buffer, "w", compression=ZIP_DEFLATED, compresslevel=compression_level) as zip_file:
        if entries:
            count = _write_entries(zip_file, entries, root, taken, skipped)
        else:
            zip_file.writestr(f"{root_name}/{EMPTY_MARKER}", b"")
            count = 1

    logger.info(f"Archive {root_name}.zip built: {count} entries, {len(skipped)} skipped")
    return ArchiveResult(buffer.getvalue(), f"{root_name}.zip", count, skipped)


async def build_folder_archive(db: AsyncSession, folder: FileEntity, root: Path = None,
                               compression_level: int = None) -> ArchiveResult:
    entries = await collect_descendants(db, folder)
    return build_archive(folder.name, entries, root, compression_level)


async def build_flat_archive(db: AsyncSession, items: List[FileEntity], archive_name: str = "files",
                             root: Path = None, compression_level: int = None) -> ArchiveResult:
    """ZIP из произвольного набора (мультивыбор, результаты поиска); папки раскрываются"""
    root = root or storage_root()
    if compression_level is None:
        compression_level = settings.ARCHIVE_COMPRESSION_LEVEL

    entries: List[TreeEntry] = []
    taken_roots: set = set()
    for item in items:
        top_name = unique_in(taken_roots, item.name, item.is_folder)
        if item.is_folder:
            children = await collect_descendants(db, item, prefix=top_name)
            if children:
                entries.extend(children)
            else:
                entries.append(TreeEntry(item.id, item.name, top_name, True, item, is_empty=True))
        else:
            entries.append(TreeEntry(item.id, item.name, top_name, False, item))

    buffer = io.BytesIO()
    skipped: List[str] = []
    with ZipFile(buffer, "w", compression=ZIP_DEFLATED, compresslevel=compression_level) as zip_file:
        count = _write_entries(zip_file, entries, root, set(), skipped)

    logger.info(f"Archive {archive_name}.zip built: {count} entries, {len(skipped)} skipped")
    return ArchiveResult(buffer.getvalue(), f"{archive_name}.zip", count, skipped)
