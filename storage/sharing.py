"""
Шары: создание ссылок и проверка доступа по ним.

Проверка идёт строго по порядку: шара существует -> код извлечения
(если не auto_fill_code) -> срок действия -> лимит посещений.
Посещение считается один раз на отпечаток клиента.
"""
import hashlib
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config.settings import settings
from models.file import FileEntity
from models.share import Share, ShareFile, ShareVisitor
from .exceptions import (
    BadExtractCode, Conflict, InvalidRequest, NotFound, ShareExpired, ShareLimitReached
)
from .tree import is_within

logger = logging.getLogger(__name__)

SHARE_CODE_LENGTH = 12
EXTRACT_CODE_LENGTH = 4
SHARE_CODE_ALPHABET = string.ascii_letters + string.digits
EXTRACT_CODE_ALPHABET = string.ascii_uppercase + string.digits
SHARE_CODE_ATTEMPTS = 5
NEVER_EXPIRES = -1


def generate_code(length: int, alphabet: str) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def client_fingerprint(ip: Optional[str], user_agent: Optional[str]) -> str:
    """sha256 от IP и user-agent: отличает посетителей без cookie"""
    raw = f"{ip or ''}|{user_agent or ''}"
    return hashlib.sha256(raw.encode()).hexdigest()


def share_link(share: Share, base_url: str = None) -> str:
    base_url = settings.SHARE_BASE_URL if base_url is None else base_url
    link = f"{base_url.rstrip('/')}/s/{share.share_code}"
    if share.auto_fill_code:
        link += f"?code={share.extract_code}"
    return link


def live_roots(share: Share) -> List[FileEntity]:
    return [sf.file for sf in share.files if sf.file is not None and not sf.file.is_deleted]


def share_to_dict(share: Share, base_url: str = None, include_code: bool = True) -> dict:
    data = {
        "id": share.id,
        "shareCode": share.share_code,
        "shareLink": share_link(share, base_url),
        "expiresAt": share.expires_at.isoformat() if share.expires_at else None,
        "accessLimit": share.access_limit,
        "accessCount": share.access_count,
        "autoFillCode": share.auto_fill_code,
        "createdAt": share.created_at.isoformat() if share.created_at else None,
        "files": [f.to_dict() for f in live_roots(share)],
    }
    if include_code:
        data["extractCode"] = share.extract_code
    return data


async def create_share(
    db: AsyncSession,
    user_id: int,
    file_ids: List[str],
    expiry_days: int = 7,
    extract_code: Optional[str] = None,
    access_limit: Optional[int] = None,
    auto_fill_code: bool = False,
) -> Share:
    if not file_ids:
        raise InvalidRequest("No files selected")
    if expiry_days is not None and expiry_days != NEVER_EXPIRES and expiry_days <= 0:
        raise InvalidRequest("expiryDays must be positive or -1")
    if access_limit is not None and access_limit <= 0:
        raise InvalidRequest("accessLimit must be positive")

    unique_ids = list(dict.fromkeys(file_ids))
    result = await db.execute(
        select(FileEntity)
        .where(FileEntity.id.in_(unique_ids))
        .where(FileEntity.uploader_id == user_id)
        .where(FileEntity.is_deleted.is_(False))
    )
    files = list(result.scalars().all())
    if len(files) != len(unique_ids):
        raise NotFound("Some files were not found")

    share_code = None
    for _ in range(SHARE_CODE_ATTEMPTS):
        candidate = generate_code(SHARE_CODE_LENGTH, SHARE_CODE_ALPHABET)
        exists = await db.execute(select(Share.id).where(Share.share_code == candidate))
        if exists.first() is None:
            share_code = candidate
            break
    if share_code is None:
        raise Conflict("Could not allocate a unique share code")

    expires_at = None
    if expiry_days is not None and expiry_days != NEVER_EXPIRES:
        expires_at = datetime.utcnow() + timedelta(days=expiry_days)

    share = Share(
        share_code=share_code,
        extract_code=(extract_code or "").strip() or generate_code(EXTRACT_CODE_LENGTH, EXTRACT_CODE_ALPHABET),
        expires_at=expires_at,
        access_limit=access_limit,
        access_count=0,
        auto_fill_code=auto_fill_code,
        user_id=user_id,
        files=[ShareFile(file_id=f.id, file=f) for f in files],
    )
    db.add(share)
    await db.commit()
    logger.info(f"Share {share_code} created by user {user_id} for {len(files)} items")
    return share


async def get_share(db: AsyncSession, share_code: str) -> Share:
    result = await db.execute(select(Share).where(Share.share_code == share_code))
    share = result.scalars().first()
    if share is None:
        raise NotFound("Share not found")
    return share


async def _find_visitor(db: AsyncSession, share_id: int, fingerprint: str) -> Optional[ShareVisitor]:
    result = await db.execute(
        select(ShareVisitor)
        .where(ShareVisitor.share_id == share_id)
        .where(ShareVisitor.fingerprint == fingerprint)
    )
    return result.scalars().first()


async def _count_new_visit(db: AsyncSession, share: Share, fingerprint: Optional[str]) -> None:
    """Условный инкремент access_count: не проходит, если лимит уже выбран"""
    result = await db.execute(
        update(Share)
        .where(Share.id == share.id)
        .where(or_(Share.access_limit.is_(None), Share.access_count < Share.access_limit))
        .values(access_count=Share.access_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ShareLimitReached()
    if fingerprint:
        db.add(ShareVisitor(share_id=share.id, fingerprint=fingerprint))


async def open_share(
    db: AsyncSession,
    share_code: str,
    extract_code: Optional[str] = None,
    fingerprint: Optional[str] = None,
    count_visit: bool = False,
) -> Share:
    share = await get_share(db, share_code)

    if not share.auto_fill_code:
        supplied = (extract_code or "").strip()
        if not supplied or not secrets.compare_digest(supplied.encode(), share.extract_code.encode()):
            raise BadExtractCode()

    if share.expires_at is not None and share.expires_at <= datetime.utcnow():
        raise ShareExpired()

    visitor = await _find_visitor(db, share.id, fingerprint) if fingerprint else None
    if visitor is None and share.access_limit is not None and share.access_count >= share.access_limit:
        raise ShareLimitReached()

    if not count_visit:
        return share

    if visitor is not None:
        visitor.visit_count += 1
        visitor.last_seen_at = datetime.utcnow()
        await db.commit()
        return share

    await _count_new_visit(db, share, fingerprint)
    try:
        await db.commit()
    except IntegrityError:
        # Тот же посетитель пришёл параллельно и уже засчитан
        await db.rollback()
        logger.info(f"Visitor already counted for share {share_code}")
    await db.refresh(share)
    logger.info(f"Share {share_code} opened, access count {share.access_count}")
    return share


async def authorize_entity(db: AsyncSession, share: Share, entity_id: str) -> FileEntity:
    """Элемент доступен, если это корень шары или потомок расшаренной папки"""
    entity = await db.get(FileEntity, entity_id)
    if entity is None or entity.is_deleted or entity.uploader_id != share.user_id:
        raise NotFound("File not found in share")

    roots = live_roots(share)
    if entity.id in {root.id for root in roots}:
        return entity
    if await is_within(db, entity, [root.id for root in roots if root.is_folder]):
        return entity
    raise NotFound("File not found in share")


async def save_to_drive(db: AsyncSession, user_id: int, share: Share, entity_id: str,
                        target_folder_id: Optional[str] = None) -> dict:
    from files.service import copy_into_drive

    entity = await authorize_entity(db, share, entity_id)
    return await copy_into_drive(db, user_id, entity, target_folder_id)


async def list_shares(db: AsyncSession, user_id: int) -> List[Share]:
    result = await db.execute(
        select(Share).where(Share.user_id == user_id).order_by(Share.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_shares(db: AsyncSession, user_id: int, share_ids: Iterable[int]) -> int:
    share_ids = list(share_ids)
    if not share_ids:
        return 0
    result = await db.execute(
        select(Share.id).where(Share.id.in_(share_ids)).where(Share.user_id == user_id)
    )
    owned = list(result.scalars().all())
    if not owned:
        return 0

    # SQLite без PRAGMA foreign_keys не каскадирует - чистим явно
    await db.execute(delete(ShareVisitor).where(ShareVisitor.share_id.in_(owned)))
    await db.execute(delete(ShareFile).where(ShareFile.share_id.in_(owned)))
    await db.execute(delete(Share).where(Share.id.in_(owned)))
    await db.commit()
    logger.info(f"Deleted {len(owned)} shares for user {user_id}")
    return len(owned)
