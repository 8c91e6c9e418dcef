from sqlalchemy import Column, DateTime, Integer, String, BigInteger
from sqlalchemy.orm import relationship
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime

from config.database import Base
from config.settings import settings

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    last_active = Column(DateTime)

    # Квота: использовано / лимит в байтах
    storage_used = Column(BigInteger, nullable=False, default=0)
    storage_limit = Column(BigInteger, nullable=False, default=lambda: settings.DEFAULT_STORAGE_LIMIT)

    files = relationship("FileEntity", back_populates="uploader")

async def get_user(db: AsyncSession, username: str):
    result = await db.execute(select(User).where(User.username == username))
    return result.scalars().first()
