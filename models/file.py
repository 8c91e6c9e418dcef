from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, BigInteger, Boolean, JSON, Index, func, text
)
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from config.database import Base


def generate_entity_id() -> str:
    return uuid.uuid4().hex


class FileEntity(Base):
    """Файл или папка пользователя (различаются флагом is_folder)"""
    __tablename__ = "files"

    id = Column(String(32), primary_key=True, default=generate_entity_id)
    name = Column(String(255), nullable=False, index=True)
    filename = Column(String(255), nullable=False, default="")  # имя blob'а в STORAGE_DIR
    path = Column(String, nullable=False, default="/")          # кешированный путь, не авторитетный
    url = Column(String, nullable=True)                          # legacy-локатор
    type = Column(String(64), nullable=False, default="other")
    mime_type = Column(String(255), nullable=True)
    size = Column(BigInteger, nullable=False, default=0)
    is_folder = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    parent_id = Column(String(32), ForeignKey("files.id"), nullable=True, index=True)
    uploader_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    uploader = relationship("User", back_populates="files")

    def to_dict(self, full_path: str = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "size": self.size or 0,
            "isFolder": self.is_folder,
            "parentId": self.parent_id,
            "path": self.path,
            "tags": list(self.tags or []),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if full_path is not None:
            data["fullPath"] = full_path
        return data


# Одна живая папка с данным именем на уровень: страховка для create-if-missing
Index(
    "uq_files_live_folder_name",
    FileEntity.__table__.c.uploader_id,
    func.coalesce(FileEntity.__table__.c.parent_id, ""),
    FileEntity.__table__.c.name,
    unique=True,
    postgresql_where=text("is_folder AND NOT is_deleted"),
    sqlite_where=text("is_folder AND NOT is_deleted"),
)
