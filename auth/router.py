from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from pydantic import BaseModel, Field
import logging

from models.user import User, get_user
from config.database import get_db
from storage import quota
from .dependencies import get_current_user
from .utils import verify_password, create_access_token, get_password_hash, password_problems

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

# Модели запросов
class UserCreate(BaseModel):
    """Модель для регистрации пользователя"""
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)

class Token(BaseModel):
    access_token: str
    token_type: str

class PasswordChange(BaseModel):
    currentPassword: str
    newPassword: str

# Эндпоинты
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Регистрация нового пользователя"""
    username = user_data.username.strip()
    if not username:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Имя пользователя не может быть пустым"
        )

    existing_user = await get_user(db, username)
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Имя пользователя уже занято"
        )

    new_user = User(
        username=username,
        hashed_password=get_password_hash(user_data.password),
    )
    db.add(new_user)
    await db.commit()
    logger.info(f"User registered: {username}")

    return {"message": "Пользователь успешно создан", "id": new_user.id}

@router.post("/token", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db)
):
    """Аутентификация и получение токена"""
    user = await get_user(db, form_data.username)

    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Неверные учетные данные",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Обновляем время последней активности
    user.last_active = datetime.utcnow()
    await db.commit()

    return {
        "access_token": create_access_token(user.username),
        "token_type": "bearer",
    }

@router.get("/me", summary="Текущий пользователь")
async def read_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Профиль и использование квоты"""
    await db.refresh(user)
    return {
        "id": user.id,
        "username": user.username,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
        "storage": quota.usage(user),
    }

@router.post("/password", summary="Сменить пароль")
async def change_password(
    payload: PasswordChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Новый пароль проверяется на сложность, старый должен совпасть"""
    if not verify_password(payload.currentPassword, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Текущий пароль указан неверно"
        )

    problems = password_problems(payload.newPassword)
    if problems:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=problems[0])

    user.hashed_password = get_password_hash(payload.newPassword)
    await db.commit()
    logger.info(f"Password changed for user {user.username}")

    return {"message": "Пароль успешно обновлен"}
