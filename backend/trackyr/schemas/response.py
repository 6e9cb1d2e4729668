"""Generic API response schemas"""

from pydantic import BaseModel, Field
from typing import Optional, Any
from datetime import datetime, timezone


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class APIResponse(BaseModel):
    """Generic API success response"""
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None
    timestamp: str = Field(default_factory=_timestamp)


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    timestamp: str
    uptime: Optional[float] = None
    environment: Optional[str] = None
    version: Optional[str] = None


class DatabaseHealthResponse(BaseModel):
    status: str
    database: str
    timestamp: str
