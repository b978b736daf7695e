from models.base_model import Base, utcnow
from models.db_storage import DBStorage
from models.refresh_token import RefreshToken
from models.stores import RefreshTokenStore, UserDirectory
from models.user import User

__all__ = [
    "Base",
    "DBStorage",
    "RefreshToken",
    "RefreshTokenStore",
    "User",
    "UserDirectory",
    "utcnow",
]
