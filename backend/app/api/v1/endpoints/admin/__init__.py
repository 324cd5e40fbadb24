"""
Admin API endpoints.
All endpoints require the admin role.
"""
from fastapi import APIRouter

from app.api.v1.endpoints.admin import users, websocket

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

# Live stream first so /users/live is not captured by /users/{user_id}
admin_router.include_router(websocket.router, tags=["Admin WebSocket"])
admin_router.include_router(users.router, prefix="/users", tags=["Admin Users"])
