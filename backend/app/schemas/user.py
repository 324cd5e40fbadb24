from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
from enum import Enum


class UserRole(str, Enum):
    """User roles"""
    STUDENT = "student"
    ADMIN = "admin"


class UserRecord(BaseModel):
    """
    A user as stored under users/{id}.

    Field aliases match the stored keys (hashed_pwd, isActive); the id is
    the record key and is not part of the stored value.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    username: str
    password_hash: str = Field("", alias="hashed_pwd")
    role: UserRole = UserRole.STUDENT
    year: str = ""
    is_active: bool = Field(True, alias="isActive")
    created_at: Optional[str] = None

    @classmethod
    def from_stored(cls, user_id: str, data: Dict[str, Any]) -> "UserRecord":
        return cls.model_validate({**data, "id": user_id})

    def to_stored(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"}, mode="json")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class UserResponse(BaseModel):
    id: str
    username: str
    role: UserRole
    year: str = ""
    is_active: bool
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserResponse":
        return cls(
            id=record.id,
            username=record.username,
            role=record.role,
            year=record.year,
            is_active=record.is_active,
            created_at=record.created_at,
        )


class UserCreate(BaseModel):
    username: str
    password: str
    role: UserRole = UserRole.STUDENT
    year: Optional[str] = None
    is_active: bool = True


class UserUpdate(BaseModel):
    """Only fields that are set are written"""
    username: Optional[str] = None
    password: Optional[str] = None
    role: Optional[UserRole] = None
    year: Optional[str] = None
    is_active: Optional[bool] = None
