"""Token schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Verified claims of an access or refresh token"""
    user_id: str
    email: str
    issued_at: datetime
    expires_at: datetime
    token_id: Optional[str] = None


class AuthTokens(BaseModel):
    """Access/refresh token pair"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
