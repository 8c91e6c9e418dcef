from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Boolean, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from config.database import Base


class Share(Base):
    __tablename__ = "shares"

    id = Column(Integer, primary_key=True, index=True)
    share_code = Column(String(32), unique=True, index=True, nullable=False)
    extract_code = Column(String(16), nullable=False)
    expires_at = Column(DateTime, nullable=True)      # None - бессрочно
    access_limit = Column(Integer, nullable=True)     # None - без ограничений
    access_count = Column(Integer, nullable=False, default=0)
    auto_fill_code = Column(Boolean, nullable=False, default=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    files = relationship(
        "ShareFile", back_populates="share", cascade="all, delete-orphan", lazy="selectin"
    )
    visitors = relationship("ShareVisitor", back_populates="share", cascade="all, delete-orphan")


class ShareFile(Base):
    __tablename__ = "share_files"

    id = Column(Integer, primary_key=True, index=True)
    share_id = Column(Integer, ForeignKey("shares.id", ondelete="CASCADE"), nullable=False, index=True)
    file_id = Column(String(32), ForeignKey("files.id"), nullable=False, index=True)

    share = relationship("Share", back_populates="files")
    file = relationship("FileEntity", lazy="selectin")


class ShareVisitor(Base):
    """Уникальный посетитель шары (хэш IP + user-agent)"""
    __tablename__ = "share_visitors"
    __table_args__ = (UniqueConstraint("share_id", "fingerprint", name="uq_share_visitor"),)

    id = Column(Integer, primary_key=True, index=True)
    share_id = Column(Integer, ForeignKey("shares.id", ondelete="CASCADE"), nullable=False, index=True)
    fingerprint = Column(String(64), nullable=False)
    visit_count = Column(Integer, nullable=False, default=1)
    first_seen_at = Column(DateTime, default=datetime.utcnow)
    last_seen_at = Column(DateTime, default=datetime.utcnow)

    share = relationship("Share", back_populates="visitors")
