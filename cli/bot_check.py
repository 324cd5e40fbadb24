"""
Bot-check gate - holds the human-verification token that must be
present before credentials are submitted.

The login page widget reports through three callbacks:
  verify(token)  challenge solved
  error(code)    widget failed to load or run
  expire()       token timed out, a new challenge is needed

Outside production a widget failure falls back to the bypass token the
server accepts in development. In production a failure blocks login
until reset().
"""

from typing import Optional


DEV_BYPASS_TOKEN = "dev-bypass-token"


class BotCheckRequired(Exception):
    """Login attempted without a usable bot-check token"""


class BotCheckGate:

    def __init__(self, production: bool = False):
        self.production = production
        self.token: Optional[str] = None
        self.last_error: Optional[str] = None
        self.blocked = False

    def verify(self, token: str) -> None:
        self.token = token or None
        self.last_error = None
        self.blocked = False

    def error(self, code: str = "") -> None:
        self.last_error = code or "unknown"
        if self.production:
            self.token = None
            self.blocked = True
        else:
            self.token = DEV_BYPASS_TOKEN

    def expire(self) -> None:
        self.token = None

    def reset(self) -> None:
        self.token = None
        self.last_error = None
        self.blocked = False

    @property
    def can_submit(self) -> bool:
        return bool(self.token) and not self.blocked

    def require(self) -> str:
        if self.blocked:
            raise BotCheckRequired(
                f"Bot check failed ({self.last_error}); reload the challenge and try again"
            )
        if not self.token:
            raise BotCheckRequired("Complete the bot check before logging in")
        return self.token
