from datetime import datetime, timedelta
from jose import jwt
import bcrypt
from typing import Union
from config.settings import settings

def get_password_hash(password: str) -> str:
    """Хеш пароля (bcrypt, соль внутри хеша)"""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return bcrypt.checkpw(plain_password.encode(), hashed_password.encode())

def create_access_token(subject: str, expires_delta: Union[timedelta, None] = None) -> str:
    """JWT с именем пользователя в sub"""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"sub": subject, "exp": datetime.utcnow() + expires_delta}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

PASSWORD_SPECIALS = set('!@#$%^&*(),.?":{}|<>')

def password_problems(password: str) -> list:
    """Список нарушенных правил; пустой - пароль подходит"""
    problems = []
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        problems.append(f"Пароль должен содержать не менее {settings.PASSWORD_MIN_LENGTH} символов")
    if not any(ch.isdigit() for ch in password):
        problems.append("Пароль должен содержать цифру")
    if not any(ch.islower() for ch in password):
        problems.append("Пароль должен содержать строчную букву")
    if not any(ch.isupper() for ch in password):
        problems.append("Пароль должен содержать заглавную букву")
    if not any(ch in PASSWORD_SPECIALS for ch in password):
        problems.append("Пароль должен содержать спецсимвол")
    return problems
