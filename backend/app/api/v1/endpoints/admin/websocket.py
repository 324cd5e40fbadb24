"""
Admin WebSocket endpoint for the live user table.
"""
import asyncio
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from app.core.exceptions import InvalidTokenError, PortalException
from app.core.logging_config import logger
from app.schemas.user import UserRecord, UserResponse, UserRole

router = APIRouter()


def users_message(users: List[UserRecord]) -> dict:
    return {
        "type": "users_update",
        "data": [UserResponse.from_record(u).model_dump(mode="json") for u in users],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.websocket("/users/live")
async def live_users(websocket: WebSocket, token: str = Query(...)):
    """
    Push the full user list on connect and after every change.

    Connect with: ws://host/api/v1/admin/users/live?token=<role_token>

    Message types sent:
    - users_update: full user list
    - error: subscription failure
    - pong: reply to {"type": "ping"}
    """
    services = websocket.app.state.services
    try:
        session = await services.auth.resolve_session(token)
    except InvalidTokenError:
        await websocket.close(code=4001, reason="Invalid token")
        return
    if session.role != UserRole.ADMIN:
        await websocket.close(code=4003, reason="Admin access required")
        return

    await websocket.accept()
    outbox: asyncio.Queue = asyncio.Queue()

    def on_change(users: List[UserRecord]) -> None:
        outbox.put_nowait(users_message(users))

    def on_error(error: Exception) -> None:
        outbox.put_nowait({"type": "error", "data": {"message": str(error)}})

    unsubscribe = await services.credentials.subscribe_users(on_change, on_error)
    logger.info(f"[AdminWS] {session.username} subscribed to live users")

    async def pump() -> None:
        while True:
            await websocket.send_json(await outbox.get())

    sender = asyncio.create_task(pump())
    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ping":
                outbox.put_nowait({"type": "pong"})
    except WebSocketDisconnect:
        logger.info(f"[AdminWS] {session.username} disconnected")
    except (PortalException, ValueError) as e:
        logger.warning(f"[AdminWS] Closing live users stream: {e}")
    finally:
        unsubscribe()
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"[AdminWS] Live users sender for {session.username} failed: {e}")
