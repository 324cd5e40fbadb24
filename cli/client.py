"""
HTTP client for the portal API.

Thin synchronous wrapper over httpx; every failure surfaces as
PortalAPIError carrying the server's error code and message.
"""

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx


class PortalAPIError(Exception):
    """Non-2xx answer or transport failure"""

    def __init__(self, message: str, status_code: int = 0, code: str = "CONNECTION_ERROR"):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    @property
    def is_auth_error(self) -> bool:
        return self.status_code == 401


_FILENAME_STAR = re.compile(r"filename\*=(?:UTF-8'')?([^;]+)", re.IGNORECASE)
_FILENAME = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)


def filename_from_disposition(header: Optional[str], default: str = "download") -> str:
    if not header:
        return default
    match = _FILENAME_STAR.search(header)
    if match:
        return unquote(match.group(1).strip())
    match = _FILENAME.search(header)
    if match:
        return match.group(1).strip()
    return default


class PortalClient:

    def __init__(
        self,
        base_url: str = "http://localhost:8000/api/v1",
        token: Optional[str] = None,
        timeout: float = 60,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers(),
                **kwargs,
            )
        except httpx.ConnectError as e:
            raise PortalAPIError("Cannot connect to server. Is the backend running?") from e
        except httpx.HTTPError as e:
            raise PortalAPIError(f"Request failed: {e}") from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = body.get("message") or body.get("detail") or response.reason_phrase
            raise PortalAPIError(
                str(message),
                status_code=response.status_code,
                code=body.get("error", "HTTP_ERROR"),
            )
        return response

    # ========== Auth ==========

    def login(
        self,
        username: str,
        password: str,
        bot_token: str,
        backing_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {"username": username, "password": password, "bot_token": bot_token}
        if backing_id:
            payload["backing_id"] = backing_id
        return self._request("POST", "/auth/login", json=payload).json()

    def logout(self) -> None:
        self._request("POST", "/auth/logout")

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/auth/me").json()

    # ========== Resources ==========

    def list_modules(self, kind: str, year: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/resources/{kind}/{year}/modules").json()

    def list_resources(self, kind: str, year: str, module: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/resources/{kind}/{year}/{module}").json()["resources"]

    def download(self, kind: str, year: str, module: str, key: str) -> Tuple[bytes, str]:
        response = self._request("GET", f"/resources/{kind}/{year}/{module}/{key}/download")
        return response.content, filename_from_disposition(response.headers.get("content-disposition"))

    def resolve(self, kind: str, year: str, module: str, key: str) -> Dict[str, Any]:
        return self._request("GET", f"/resources/{kind}/{year}/{module}/{key}/resolve").json()

    # ========== Public ==========

    def seminars(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/seminars").json()

    def recent(self, kind: str, limit: int = 3) -> List[Dict[str, Any]]:
        return self._request("GET", "/public/recent", params={"kind": kind, "limit": limit}).json()
