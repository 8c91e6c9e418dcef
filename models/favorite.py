from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Boolean, UniqueConstraint
)
from datetime import datetime

from config.database import Base
from .file import generate_entity_id


class FavoriteFolder(Base):
    __tablename__ = "favorite_folders"

    id = Column(String(32), primary_key=True, default=generate_entity_id)
    name = Column(String(255), nullable=False)
    description = Column(String(1024), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self, file_count: int = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isDefault": self.is_default,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if file_count is not None:
            data["fileCount"] = file_count
        return data


class Favorite(Base):
    """Файл в папке избранного; один файл может лежать в нескольких папках"""
    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("folder_id", "file_id", name="uq_favorite_folder_file"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    file_id = Column(String(32), ForeignKey("files.id"), nullable=False, index=True)
    folder_id = Column(
        String(32), ForeignKey("favorite_folders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at = Column(DateTime, default=datetime.utcnow)
