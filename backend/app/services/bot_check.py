"""
Bot check - server-side verification of Cloudflare Turnstile tokens
"""

from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import BotCheckError
from app.core.logging_config import logger
from app.schemas.auth import BotCheckResult


DEV_BYPASS_TOKEN = "dev-bypass-token"


class TurnstileVerifier:
    """
    POSTs secret/response/remoteip to the siteverify endpoint.

    Outside production the widget-failure bypass token is accepted
    without a provider round-trip.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        verify_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        allow_dev_bypass: Optional[bool] = None,
    ):
        self.secret_key = settings.TURNSTILE_SECRET_KEY if secret_key is None else secret_key
        self.verify_url = verify_url or settings.TURNSTILE_VERIFY_URL
        self._client = client
        self._owns_client = client is None
        if allow_dev_bypass is None:
            allow_dev_bypass = settings.TURNSTILE_DEV_BYPASS and not settings.is_production()
        self.allow_dev_bypass = allow_dev_bypass

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.TURNSTILE_TIMEOUT)
        return self._client

    async def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> BotCheckResult:
        if not token:
            return BotCheckResult(success=False, error="No token provided")

        if token == DEV_BYPASS_TOKEN:
            if self.allow_dev_bypass:
                logger.debug("Bot check bypassed (development)")
                return BotCheckResult(success=True)
            return BotCheckResult(success=False, error="Bypass token not accepted")

        if not self.secret_key:
            logger.error("TURNSTILE_SECRET_KEY is not configured")
            return BotCheckResult(success=False, error="Configuration error")

        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            response = await self._get_client().post(self.verify_url, data=form)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Turnstile verification request failed: {e}")
            return BotCheckResult(success=False, error="Verification request failed")

        success = bool(payload.get("success"))
        error_codes = payload.get("error-codes") or []
        return BotCheckResult(
            success=success,
            error=", ".join(error_codes) if error_codes else None,
        )

    async def require(self, token: Optional[str], remote_ip: Optional[str] = None) -> None:
        """Raise BotCheckError unless the token verifies"""
        result = await self.verify(token, remote_ip)
        if not result.success:
            raise BotCheckError(
                "Bot verification failed",
                error_codes=[c.strip() for c in (result.error or "").split(",") if c.strip()],
            )

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
