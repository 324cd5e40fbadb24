"""
Credential Store - user records under users/{id}

The tree has no secondary index on username, so login does a linear
scan. Lookups never say whether the username or the password was
wrong.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import UserNotFoundError, ValidationError
from app.core.logging_config import logger
from app.core.security import (
    hash_password,
    sanitize_username,
    validate_password,
    validate_username,
    verify_password,
)
from app.db.paths import USER_YEARS, USERS_ROOT, user_path
from app.db.tree_store import ErrorCallback, TreeStore, Unsubscribe
from app.schemas.user import UserRecord, UserRole


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_users(snapshot: Any) -> List[UserRecord]:
    users = []
    if not isinstance(snapshot, dict):
        return users
    for user_id, data in snapshot.items():
        if not isinstance(data, dict):
            continue
        try:
            users.append(UserRecord.from_stored(user_id, data))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed user record {user_id}: {e.error_count()} errors")
    return users


class CredentialStore:
    """Password hashing, user lookup and keyed user writes"""

    def __init__(self, tree: TreeStore):
        self.tree = tree

    hash = staticmethod(hash_password)
    sanitize_username = staticmethod(sanitize_username)

    # ========== Reads ==========

    async def list_users(self) -> List[UserRecord]:
        return _parse_users(await self.tree.read(USERS_ROOT))

    async def get_user(self, user_id: str) -> UserRecord:
        data = await self.tree.read(user_path(user_id))
        if not isinstance(data, dict):
            raise UserNotFoundError(user_id)
        return UserRecord.from_stored(user_id, data)

    async def find_user_for_login(self, username: str, password: str) -> Optional[UserRecord]:
        """
        Return the first active user whose sanitized username and password
        hash match, or None. None covers unknown users, wrong passwords
        and inactive accounts alike.
        """
        clean = sanitize_username(username)
        if not clean or not password:
            return None

        for user in await self.list_users():
            if (
                sanitize_username(user.username) == clean
                and verify_password(password, user.password_hash)
                and user.is_active is not False
            ):
                return user
        return None

    async def username_taken(self, username: str, exclude_id: Optional[str] = None) -> bool:
        wanted = sanitize_username(username).lower()
        return any(
            u.username.lower() == wanted and u.id != exclude_id
            for u in await self.list_users()
        )

    # ========== Writes ==========

    @staticmethod
    def _check_role_and_year(role: UserRole, year: Optional[str]) -> str:
        if role == UserRole.ADMIN:
            return ""
        if year not in USER_YEARS:
            raise ValidationError(
                f"Students need a year in {', '.join(USER_YEARS)}",
                field="year",
            )
        return year

    async def add_user(
        self,
        username: str,
        password: str,
        role: UserRole = UserRole.STUDENT,
        year: Optional[str] = None,
        is_active: bool = True,
    ) -> UserRecord:
        """Validate everything, then write a single new record"""
        clean = validate_username(username)
        validate_password(password)
        role = UserRole(role)
        year = self._check_role_and_year(role, year)

        if await self.username_taken(clean):
            raise ValidationError(f"Username '{clean}' already exists", field="username")

        record = UserRecord(
            username=clean,
            password_hash=hash_password(password),
            role=role,
            year=year,
            is_active=is_active,
            created_at=_now_iso(),
        )
        user_id = await self.tree.push(USERS_ROOT, record.to_stored())
        record.id = user_id
        logger.info(f"User created: {clean} ({role.value})")
        return record

    async def update_user(
        self,
        user_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        role: Optional[UserRole] = None,
        year: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> UserRecord:
        """Sparse update: fields left as None keep their stored value"""
        current = await self.get_user(user_id)
        changes: Dict[str, Any] = {}

        if username is not None:
            clean = validate_username(username)
            if clean != current.username and await self.username_taken(clean, exclude_id=user_id):
                raise ValidationError(f"Username '{clean}' already exists", field="username")
            changes["username"] = clean

        if password:
            validate_password(password)
            changes["hashed_pwd"] = hash_password(password)

        if role is not None or year is not None:
            new_role = UserRole(role) if role is not None else current.role
            new_year = year if year is not None else current.year
            checked = self._check_role_and_year(new_role, new_year)
            if role is not None:
                changes["role"] = new_role.value
            if checked != current.year:
                changes["year"] = checked

        if is_active is not None:
            changes["isActive"] = bool(is_active)

        if changes:
            await self.tree.update(user_path(user_id), changes)
            logger.info(f"User updated: {user_id} ({', '.join(sorted(changes))})")
        return await self.get_user(user_id)

    async def delete_user(self, user_id: str) -> None:
        if not await self.tree.exists(user_path(user_id)):
            raise UserNotFoundError(user_id)
        await self.tree.delete(user_path(user_id))
        logger.info(f"User deleted: {user_id}")

    async def toggle_active(self, user_id: str, is_active: bool) -> UserRecord:
        if not await self.tree.exists(user_path(user_id)):
            raise UserNotFoundError(user_id)
        await self.tree.update(user_path(user_id), {"isActive": bool(is_active)})
        logger.info(f"User {'activated' if is_active else 'deactivated'}: {user_id}")
        return await self.get_user(user_id)

    # ========== Live updates ==========

    async def subscribe_users(
        self,
        on_change: Callable[[List[UserRecord]], Any],
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """Push the full user list now and after every change in users/"""

        def handle(snapshot: Any):
            return on_change(_parse_users(snapshot))

        return await self.tree.subscribe(USERS_ROOT, handle, on_error)
