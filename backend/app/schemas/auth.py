from pydantic import BaseModel, Field
from typing import Optional

from app.schemas.user import UserRole


class LoginRequest(BaseModel):
    username: str = Field(..., max_length=128)
    password: str = Field(..., max_length=256)
    bot_token: Optional[str] = None
    backing_id: Optional[str] = None


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    role: UserRole
    username: str
    user_id: str
    backing_id: str
    login_time: str
    expires_at: str


class SessionInfo(BaseModel):
    role: UserRole
    username: str
    user_id: str
    backing_id: str
    expires_at: Optional[str] = None


class BotCheckResult(BaseModel):
    success: bool
    error: Optional[str] = None
