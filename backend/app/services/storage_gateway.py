"""
Storage gateway access.

The gateway is the only component that talks to object storage. It is
either served by this application (LocalGateway, in-process) or
deployed separately and reached over HTTP (HttpStorageGateway):

    POST   /upload               multipart file + path -> {"path": ...}
    GET    /download?path=<key>  raw bytes
    DELETE /delete               JSON {"path": ...}

Every call carries `Authorization: Bearer <role-token>`.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import StorageError, StorageObjectNotFoundError
from app.core.logging_config import logger
from app.services.object_storage import ObjectStorage


class ObjectGateway(ABC):

    @abstractmethod
    async def upload(self, path: str, content: bytes, filename: str, content_type: str,
                     role_token: str) -> str:
        """Store content and return the stored path"""

    @abstractmethod
    async def download(self, path: str, role_token: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, path: str, role_token: str) -> None:
        ...

    def download_url(self, path: str) -> str:
        return settings.get_download_url(path)

    async def close(self) -> None:
        pass


class LocalGateway(ObjectGateway):
    """In-process gateway; authorization is checked by the API layer"""

    def __init__(self, storage: ObjectStorage):
        self.storage = storage

    async def upload(self, path, content, filename, content_type, role_token) -> str:
        return await self.storage.put(path, content, content_type)

    async def download(self, path, role_token) -> bytes:
        return await self.storage.get(path)

    async def delete(self, path, role_token) -> None:
        await self.storage.delete(path)


class HttpStorageGateway(ObjectGateway):
    """Remote gateway over HTTP"""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None):
        self.base_url = (base_url or settings.STORAGE_GATEWAY_URL).rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout or settings.STORAGE_GATEWAY_TIMEOUT

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    @staticmethod
    def _headers(role_token: str) -> dict:
        return {"Authorization": f"Bearer {role_token}"}

    def download_url(self, path: str) -> str:
        return str(httpx.URL(f"{self.base_url}/download", params={"path": path}))

    async def upload(self, path, content, filename, content_type, role_token) -> str:
        try:
            response = await self._get_client().post(
                f"{self.base_url}/upload",
                files={"file": (filename, content, content_type)},
                data={"path": path},
                headers=self._headers(role_token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"[Gateway-Upload] {path}: HTTP {e.response.status_code}")
            raise StorageError(f"Upload failed with status {e.response.status_code}", operation="upload") from e
        except httpx.HTTPError as e:
            logger.error(f"[Gateway-Upload] {path}: {e}")
            raise StorageError("Upload failed", operation="upload") from e

        # The object is stored once the gateway answers 2xx; the body only echoes the key
        try:
            body = response.json()
        except ValueError:
            body = None
        stored = (body.get("path") if isinstance(body, dict) else None) or path
        logger.info(f"[Gateway-Upload] Uploaded: {stored}")
        return stored

    async def download(self, path, role_token) -> bytes:
        try:
            response = await self._get_client().get(
                f"{self.base_url}/download",
                params={"path": path},
                headers=self._headers(role_token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise StorageObjectNotFoundError(path)
            raise StorageError(f"Download failed with status {e.response.status_code}", operation="download") from e
        except httpx.HTTPError as e:
            raise StorageError("Download failed", operation="download") from e
        return response.content

    async def delete(self, path, role_token) -> None:
        try:
            response = await self._get_client().request(
                "DELETE",
                f"{self.base_url}/delete",
                json={"path": path},
                headers=self._headers(role_token),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StorageError(f"Delete failed with status {e.response.status_code}", operation="delete") from e
        except httpx.HTTPError as e:
            raise StorageError("Delete failed", operation="delete") from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
