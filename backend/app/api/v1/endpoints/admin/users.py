"""
Admin User Management endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.modules.auth.dependencies import require_admin
from app.schemas.auth import SessionInfo
from app.schemas.user import UserCreate, UserRecord, UserResponse, UserRole, UserUpdate
from app.services.container import get_credential_store
from app.services.credential_store import CredentialStore

router = APIRouter()


async def ensure_other_active_admin(credentials: CredentialStore, user: UserRecord) -> None:
    """Refuse changes that would leave the portal without an active admin"""
    if not (user.is_admin and user.is_active):
        return
    others = [
        u for u in await credentials.list_users()
        if u.id != user.id and u.is_admin and u.is_active
    ]
    if not others:
        raise ValidationError("At least one active admin account is required", field="role")


@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=20),
    credentials: CredentialStore = Depends(get_credential_store),
    current_admin: SessionInfo = Depends(require_admin),
):
    """List all users, optionally filtered by role, status or username fragment"""
    users = await credentials.list_users()
    if role is not None:
        users = [u for u in users if u.role == role]
    if is_active is not None:
        users = [u for u in users if u.is_active == is_active]
    if search:
        needle = search.lower()
        users = [u for u in users if needle in u.username.lower()]
    return [UserResponse.from_record(u) for u in users]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    credentials: CredentialStore = Depends(get_credential_store),
    current_admin: SessionInfo = Depends(require_admin),
):
    record = await credentials.add_user(
        data.username,
        data.password,
        role=data.role,
        year=data.year,
        is_active=data.is_active,
    )
    logger.info(f"[Admin] {current_admin.username} created user {record.username}")
    return UserResponse.from_record(record)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    credentials: CredentialStore = Depends(get_credential_store),
    current_admin: SessionInfo = Depends(require_admin),
):
    return UserResponse.from_record(await credentials.get_user(user_id))


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    data: UserUpdate,
    credentials: CredentialStore = Depends(get_credential_store),
    current_admin: SessionInfo = Depends(require_admin),
):
    """Update only the provided fields; a blank password keeps the old one"""
    current = await credentials.get_user(user_id)
    if data.is_active is False or (data.role is not None and data.role != UserRole.ADMIN):
        await ensure_other_active_admin(credentials, current)

    record = await credentials.update_user(
        user_id,
        username=data.username,
        password=data.password,
        role=data.role,
        year=data.year,
        is_active=data.is_active,
    )
    logger.info(f"[Admin] {current_admin.username} updated user {record.username}")
    return UserResponse.from_record(record)


@router.post("/{user_id}/toggle", response_model=UserResponse)
async def toggle_user_status(
    user_id: str,
    credentials: CredentialStore = Depends(get_credential_store),
    current_admin: SessionInfo = Depends(require_admin),
):
    """Flip the account between active and inactive"""
    current = await credentials.get_user(user_id)
    if current.is_active:
        await ensure_other_active_admin(credentials, current)
    record = await credentials.toggle_active(user_id, not current.is_active)
    logger.info(
        f"[Admin] {current_admin.username} {'activated' if record.is_active else 'deactivated'} {record.username}"
    )
    return UserResponse.from_record(record)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    credentials: CredentialStore = Depends(get_credential_store),
    current_admin: SessionInfo = Depends(require_admin),
):
    current = await credentials.get_user(user_id)
    await ensure_other_active_admin(credentials, current)
    await credentials.delete_user(user_id)
    logger.info(f"[Admin] {current_admin.username} deleted user {current.username}")
