from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from app.core.exceptions import AuthorizationError, InvalidTokenError
from app.core.logging_config import set_username
from app.schemas.auth import SessionInfo
from app.schemas.user import UserRole
from app.services.auth_service import AuthService
from app.services.container import get_auth_service

security = HTTPBearer(auto_error=False)


async def get_role_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """Raw bearer token, forwarded to the storage gateway"""
    if not credentials or not credentials.credentials:
        raise InvalidTokenError("Authentication required")
    return credentials.credentials


async def get_current_session(
    token: str = Depends(get_role_token),
    auth: AuthService = Depends(get_auth_service),
) -> SessionInfo:
    """Get current authenticated session"""
    session = await auth.resolve_session(token)
    set_username(session.username)
    return session


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth: AuthService = Depends(get_auth_service),
) -> Optional[SessionInfo]:
    """Get current session (optional); invalid tokens count as anonymous"""
    if not credentials or not credentials.credentials:
        return None
    try:
        return await auth.resolve_session(credentials.credentials)
    except InvalidTokenError:
        return None


async def require_admin(
    session: SessionInfo = Depends(get_current_session),
) -> SessionInfo:
    """Get current admin session"""
    if session.role != UserRole.ADMIN:
        raise AuthorizationError()
    return session
