"""
Auth Service - login, logout and role-token sessions

A successful login binds the user's role to an anonymous backing
identity (user_roles/{backing_id}) and returns a signed role token.
Logout removes the binding, which invalidates the token.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.config import settings
from app.core.exceptions import AuthenticationError, InvalidTokenError, UserNotFoundError
from app.core.logging_config import logger
from app.core.security import (
    create_role_token,
    decode_role_token,
    generate_backing_id,
    sanitize_username,
)
from app.db.paths import is_valid_segment, user_role_path
from app.db.tree_store import TreeStore
from app.schemas.auth import LoginResponse, SessionInfo
from app.services.bot_check import TurnstileVerifier
from app.services.credential_store import CredentialStore


class AuthService:

    def __init__(self, credentials: CredentialStore, tree: TreeStore, bot_check: TurnstileVerifier):
        self.credentials = credentials
        self.tree = tree
        self.bot_check = bot_check

    async def login(
        self,
        username: str,
        password: str,
        bot_token: Optional[str],
        remote_ip: Optional[str] = None,
        backing_id: Optional[str] = None,
    ) -> LoginResponse:
        await self.bot_check.require(bot_token, remote_ip)

        user = await self.credentials.find_user_for_login(username, password)
        if user is None:
            logger.log_auth_event("login", False, username=sanitize_username(username))
            raise AuthenticationError()

        # Reuse the caller's anonymous identity unless it is bound to someone else
        if is_valid_segment(backing_id):
            binding = await self.tree.read(user_role_path(backing_id))
            if isinstance(binding, dict) and binding.get("uid") != user.id:
                backing_id = None
        else:
            backing_id = None
        backing_id = backing_id or generate_backing_id()

        now = datetime.now(timezone.utc)
        expires = now + timedelta(seconds=settings.SESSION_TIMEOUT_SECONDS)
        await self.tree.write(user_role_path(backing_id), {
            "role": user.role.value,
            "username": user.username,
            "uid": user.id,
            "updated_at": now.isoformat(),
        })

        token = create_role_token(
            role=user.role.value,
            username=user.username,
            backing_id=backing_id,
            user_id=user.id,
            issued_at=now,
        )
        logger.log_auth_event("login", True, username=user.username, role=user.role.value)
        return LoginResponse(
            token=token,
            role=user.role,
            username=user.username,
            user_id=user.id,
            backing_id=backing_id,
            login_time=now.isoformat(),
            expires_at=expires.isoformat(),
        )

    async def resolve_session(self, token: str) -> SessionInfo:
        """Decode the role token and check its backing identity is still bound"""
        payload = decode_role_token(token)
        backing_id = payload.get("sub")
        if not is_valid_segment(backing_id):
            raise InvalidTokenError("Invalid token payload")

        binding = await self.tree.read(user_role_path(backing_id))
        if not isinstance(binding, dict) or binding.get("role") != payload["role"]:
            raise InvalidTokenError("Session has been signed out")

        # The account must still exist, be active and hold the token's role
        user_id = payload.get("uid")
        if not is_valid_segment(user_id) or binding.get("uid") != user_id:
            raise InvalidTokenError("Invalid token payload")
        try:
            user = await self.credentials.get_user(user_id)
        except UserNotFoundError:
            user = None
        if user is None or not user.is_active or user.role.value != payload["role"]:
            await self.tree.delete(user_role_path(backing_id))
            logger.log_auth_event("session_revoked", False, username=payload.get("username"))
            raise InvalidTokenError("Account changed, please sign in again")

        return SessionInfo(
            role=payload["role"],
            username=payload.get("username", ""),
            user_id=payload.get("uid", ""),
            backing_id=backing_id,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc).isoformat(),
        )

    async def logout(self, session: SessionInfo) -> None:
        await self.tree.delete(user_role_path(session.backing_id))
        logger.log_auth_event("logout", True, username=session.username)
