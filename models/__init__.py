from config.database import Base
from .user import User, get_user
from .file import FileEntity
from .share import Share, ShareFile, ShareVisitor
from .activity import FileAccess
from .favorite import Favorite, FavoriteFolder

__all__ = [
    'Base', 'User', 'get_user', 'FileEntity', 'Share', 'ShareFile', 'ShareVisitor',
    'FileAccess', 'Favorite', 'FavoriteFolder',
]
