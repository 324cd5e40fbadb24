from fastapi import APIRouter, Depends, Request, status

from app.core.rate_limiter import login_rate_limit
from app.schemas.auth import LoginRequest, LoginResponse, SessionInfo
from app.modules.auth.dependencies import get_current_session
from app.services.auth_service import AuthService
from app.services.container import get_auth_service


router = APIRouter()


@router.post("/login", response_model=LoginResponse)
@login_rate_limit()
async def login(
    request: Request,
    credentials: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """
    Exchange username/password (plus the bot-check token) for a role token.

    Unknown user, wrong password and inactive account all fail with the
    same 401 response.
    """
    client_ip = request.client.host if request.client else None
    return await auth.login(
        credentials.username,
        credentials.password,
        credentials.bot_token,
        remote_ip=client_ip,
        backing_id=credentials.backing_id,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: SessionInfo = Depends(get_current_session),
    auth: AuthService = Depends(get_auth_service),
):
    """Remove the role binding; the token stops working immediately"""
    await auth.logout(session)


@router.get("/me", response_model=SessionInfo)
async def me(session: SessionInfo = Depends(get_current_session)):
    return session
