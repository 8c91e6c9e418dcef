"""
Разрешение иерархии папок.

Вниз: папка -> плоский список потомков с относительными путями (для ZIP).
Вверх: parent_id -> человекочитаемый путь / хлебные крошки.

Обход итеративный, глубина ограничена MAX_TREE_DEPTH, циклы в цепочке
parent_id отсекаются множеством посещённых id.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.file import FileEntity

logger = logging.getLogger(__name__)


@dataclass
class TreeEntry:
    id: str
    name: str
    relative_path: str
    is_folder: bool
    entity: FileEntity
    is_empty: bool = False


async def get_children(db: AsyncSession, folder_id: str) -> List[FileEntity]:
    result = await db.execute(
        select(FileEntity)
        .where(FileEntity.parent_id == folder_id)
        .where(FileEntity.is_deleted.is_(False))
        .order_by(FileEntity.is_folder.desc(), FileEntity.name)
    )
    return list(result.scalars().all())


async def collect_descendants(
    db: AsyncSession,
    folder: FileEntity,
    max_depth: int = None,
    prefix: Optional[str] = None,
) -> List[TreeEntry]:
    """
    Все живые потомки папки. relative_path начинается с имени корня
    (или с prefix, если он задан): "F/a.txt", "F/Empty".
    Ошибки БД не перехватываются.
    """
    if max_depth is None:
        max_depth = settings.MAX_TREE_DEPTH

    root_path = prefix if prefix is not None else folder.name
    entries: List[TreeEntry] = []
    visited = {folder.id}
    stack = [(folder.id, root_path, 0)]
    truncated = set()

    while stack:
        folder_id, folder_path, depth = stack.pop()
        if depth >= max_depth:
            logger.warning(f"Folder {folder_id} is deeper than {max_depth} levels, subtree skipped")
            truncated.add(folder_id)
            continue

        for child in await get_children(db, folder_id):
            if child.id in visited:
                logger.warning(f"Cycle detected at {child.id}, skipping")
                continue
            visited.add(child.id)

            child_path = f"{folder_path}/{child.name}"
            entry = TreeEntry(
                id=child.id,
                name=child.name,
                relative_path=child_path,
                is_folder=child.is_folder,
                entity=child,
            )
            entries.append(entry)
            if child.is_folder:
                stack.append((child.id, child_path, depth + 1))

    # Пустая папка - без единого живого потомка.
    # У обрезанных по глубине папок потомки не читались: проверяем их наличие отдельно
    parents = {entry.entity.parent_id for entry in entries}
    if truncated:
        result = await db.execute(
            select(FileEntity.parent_id)
            .where(FileEntity.parent_id.in_(truncated))
            .where(FileEntity.is_deleted.is_(False))
            .distinct()
        )
        parents.update(result.scalars().all())
    for entry in entries:
        if entry.is_folder and entry.id not in parents:
            entry.is_empty = True

    return entries


async def find_descendant_ids(db: AsyncSession, user_id: int, ids: Iterable[str]) -> set:
    """id всех живых потомков (послойно, без рекурсии)"""
    found = set()
    frontier = list(ids)
    depth = 0
    while frontier and depth < settings.MAX_TREE_DEPTH:
        result = await db.execute(
            select(FileEntity.id)
            .where(FileEntity.parent_id.in_(frontier))
            .where(FileEntity.uploader_id == user_id)
            .where(FileEntity.is_deleted.is_(False))
        )
        frontier = [child_id for child_id in result.scalars().all() if child_id not in found]
        found.update(frontier)
        depth += 1
    return found


async def load_folder_map(db: AsyncSession, user_id: int) -> Dict[str, FileEntity]:
    """Все живые папки пользователя одним запросом"""
    result = await db.execute(
        select(FileEntity)
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_folder.is_(True))
        .where(FileEntity.is_deleted.is_(False))
    )
    return {folder.id: folder for folder in result.scalars().all()}


def build_path(parent_id: Optional[str], folder_map: Dict[str, FileEntity],
               max_depth: int = None) -> str:
    """
    "/A/B" для элемента с родителем B. Висячий parent_id молча
    обрезает путь.
    """
    if max_depth is None:
        max_depth = settings.MAX_TREE_DEPTH

    parts = []
    seen = set()
    current = parent_id
    while current and current not in seen and len(parts) < max_depth:
        seen.add(current)
        parent = folder_map.get(current)
        if parent is None:
            break
        parts.insert(0, parent.name)
        current = parent.parent_id
    return "/" + "/".join(parts) if parts else "/"


async def breadcrumbs(db: AsyncSession, user_id: int, folder_id: str) -> List[dict]:
    """Путь от корня до папки включительно: [{id, name}, ...]"""
    crumbs = []
    seen = set()
    current = folder_id
    while current and current not in seen and len(crumbs) < settings.MAX_TREE_DEPTH:
        seen.add(current)
        result = await db.execute(
            select(FileEntity)
            .where(FileEntity.id == current)
            .where(FileEntity.uploader_id == user_id)
            .where(FileEntity.is_folder.is_(True))
            .where(FileEntity.is_deleted.is_(False))
        )
        folder = result.scalars().first()
        if folder is None:
            break
        crumbs.insert(0, {"id": folder.id, "name": folder.name})
        current = folder.parent_id
    return crumbs


async def is_within(db: AsyncSession, entity: FileEntity, root_ids: Iterable[str]) -> bool:
    """Лежит ли элемент в одном из корней (или является им)"""
    roots = set(root_ids)
    if entity.id in roots:
        return True

    seen = {entity.id}
    current = entity.parent_id
    depth = 0
    while current and current not in seen and depth < settings.MAX_TREE_DEPTH:
        if current in roots:
            return True
        seen.add(current)
        result = await db.execute(
            select(FileEntity.parent_id)
            .where(FileEntity.id == current)
            .where(FileEntity.is_deleted.is_(False))
        )
        row = result.first()
        if row is None:
            return False
        current = row[0]
        depth += 1
    return False
