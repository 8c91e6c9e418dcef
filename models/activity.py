from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from config.database import Base


class FileAccess(Base):
    """Одна запись - одно открытие файла пользователем"""
    __tablename__ = "file_accesses"
    __table_args__ = (Index("ix_file_accesses_user_time", "user_id", "accessed_at"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    file_id = Column(String(32), ForeignKey("files.id"), nullable=False, index=True)
    accessed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", lazy="selectin")
