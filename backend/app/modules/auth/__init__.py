# Authentication module

from app.modules.auth.dependencies import (
    get_current_session,
    get_optional_session,
    get_role_token,
    require_admin,
)

__all__ = [
    "get_current_session",
    "get_optional_session",
    "get_role_token",
    "require_admin",
]
