"""
Session/Role Manager - the client side of a login

State machine:
    ANONYMOUS --login()--> AUTHENTICATED(role) --logout()--> ANONYMOUS

The role token, username, role and backing identity are persisted with
the login and last-activity timestamps, so later commands resume the
session until it expires (one year after login by default).
"""

import json
import os
import time
from dataclasses import dataclass, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from cli.client import PortalAPIError, PortalClient
from cli.config import ONE_YEAR_SECONDS


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class LoginFailedError(Exception):
    """Credentials rejected, account inactive, or bot check refused"""


@dataclass
class ClientSession:
    role: str
    username: str
    backing_id: str
    token: str
    login_time: float
    last_activity: float
    user_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientSession":
        return cls(
            role=data["role"],
            username=data["username"],
            backing_id=data["backing_id"],
            token=data["token"],
            login_time=float(data["login_time"]),
            last_activity=float(data.get("last_activity", data["login_time"])),
            user_id=data.get("user_id", ""),
        )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ========== Durable storage ==========

class MemorySessionStorage:

    def __init__(self):
        self.data: Optional[Dict[str, Any]] = None

    def load(self) -> Optional[Dict[str, Any]]:
        return dict(self.data) if self.data else None

    def save(self, data: Dict[str, Any]) -> None:
        self.data = dict(data)

    def clear(self) -> None:
        self.data = None


class FileSessionStorage:
    """JSON file, readable by the owner only"""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)
        if os.name == "posix":
            os.chmod(self.path, 0o600)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


Observer = Callable[[SessionState, Optional[ClientSession]], None]


class SessionRoleManager:

    def __init__(
        self,
        storage,
        client: PortalClient,
        clock: Callable[[], float] = time.time,
        timeout_seconds: int = ONE_YEAR_SECONDS,
        activity_throttle_seconds: int = 30,
    ):
        self.storage = storage
        self.client = client
        self.clock = clock
        self.timeout_seconds = timeout_seconds
        self.activity_throttle_seconds = activity_throttle_seconds
        self.session: Optional[ClientSession] = None
        self._observers: List[Observer] = []

    @property
    def state(self) -> SessionState:
        return SessionState.AUTHENTICATED if self.session else SessionState.ANONYMOUS

    @property
    def role(self) -> Optional[str]:
        return self.session.role if self.session else None

    # ========== Observers ==========

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self.state, self.session)

    # ========== Lifecycle ==========

    def is_expired(self, session: ClientSession) -> bool:
        return self.clock() - session.login_time > self.timeout_seconds

    def restore(self) -> Optional[ClientSession]:
        """Resume the persisted session; an expired or corrupt one is cleared"""
        data = self.storage.load()
        if not data:
            self.session = None
            return None
        try:
            session = ClientSession.from_dict(data)
        except (KeyError, TypeError, ValueError):
            self.storage.clear()
            self.session = None
            return None
        if self.is_expired(session):
            self.storage.clear()
            self.session = None
            return None
        self.session = session
        self.client.token = session.token
        return session

    def login(self, username: str, password: str, bot_token: str) -> ClientSession:
        backing_id = self.session.backing_id if self.session else None
        try:
            data = self.client.login(username, password, bot_token, backing_id=backing_id)
        except PortalAPIError as e:
            if e.status_code in (400, 401, 422, 429):
                raise LoginFailedError(e.message) from e
            raise

        now = self.clock()
        self.session = ClientSession(
            role=data["role"],
            username=data["username"],
            backing_id=data["backing_id"],
            token=data["token"],
            login_time=now,
            last_activity=now,
            user_id=data.get("user_id", ""),
        )
        self.client.token = self.session.token
        self.storage.save(self.session.to_dict())
        self._notify()
        return self.session

    def logout(self) -> None:
        """Release the backing identity server-side, then clear local state"""
        try:
            if self.session is not None:
                self.client.logout()
        except PortalAPIError as e:
            # an expired or revoked token has nothing left to release
            if not e.is_auth_error:
                raise
        finally:
            self.session = None
            self.client.token = None
            self.storage.clear()
            self._notify()

    def touch(self) -> bool:
        """Record activity; persisted at most once per throttle window"""
        if self.session is None:
            return False
        now = self.clock()
        if now - self.session.last_activity < self.activity_throttle_seconds:
            return False
        self.session.last_activity = now
        self.storage.save(self.session.to_dict())
        return True
