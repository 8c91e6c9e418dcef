from fastapi.security import OAuth2PasswordBearer
from fastapi import Depends
from jose import JWTError, jwt
from models.user import User, get_user
from config.database import get_db
from sqlalchemy.ext.asyncio import AsyncSession
from config.settings import settings
from storage.exceptions import Unauthorized

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/token")

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        username: str = payload.get("sub")
        if username is None:
            raise Unauthorized()
    except JWTError:
        raise Unauthorized()

    user = await get_user(db, username)
    if user is None:
        raise Unauthorized()
    return user
