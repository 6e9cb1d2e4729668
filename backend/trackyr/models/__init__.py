"""Database models"""

from trackyr.models.user import User
from trackyr.models.refresh_token import RefreshToken

__all__ = ["User", "RefreshToken"]
