"""
Object Storage - blob store behind the upload/download/delete gateway

Backends:
- LocalObjectStorage: files under STORAGE_LOCAL_DIR
- S3ObjectStorage: S3-compatible bucket (AWS S3, Cloudflare R2, MinIO)
With retry logic for transient S3 failures
"""

import asyncio
import time
from abc import ABC, abstractmethod
from functools import wraps
from pathlib import Path, PurePosixPath
from typing import Optional

import aiofiles
import aiofiles.os
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from app.core.config import settings
from app.core.exceptions import StorageError, StorageObjectNotFoundError, ValidationError
from app.core.logging_config import logger


def retry_with_backoff(max_retries: int = 3, base_delay: float = 1.0, max_delay: float = 30.0):
    """
    Decorator for retry logic with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
    """
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except (ClientError, ConnectionError, TimeoutError) as e:
                    if _is_missing_key(e):
                        raise
                    last_exception = e
                    if attempt < max_retries - 1:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        logger.warning(f"[S3-Retry] Attempt {attempt + 1}/{max_retries} failed: {e}. Retrying in {delay:.1f}s...")
                        await asyncio.sleep(delay)
                    else:
                        logger.error(f"[S3-Retry] All {max_retries} attempts failed: {e}")
            raise last_exception

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (ClientError, ConnectionError, TimeoutError) as e:
                    if _is_missing_key(e):
                        raise
                    last_exception = e
                    if attempt < max_retries - 1:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        logger.warning(f"[S3-Retry] Attempt {attempt + 1}/{max_retries} failed: {e}. Retrying in {delay:.1f}s...")
                        time.sleep(delay)
                    else:
                        logger.error(f"[S3-Retry] All {max_retries} attempts failed: {e}")
            raise last_exception

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper
    return decorator


def _is_missing_key(error: Exception) -> bool:
    if not isinstance(error, ClientError):
        return False
    code = error.response.get('Error', {}).get('Code', '')
    return code in ('NoSuchKey', '404', 'NotFound')


def normalize_key(path: str) -> str:
    """Reject empty, absolute or parent-escaping object keys"""
    if not path or not path.strip():
        raise ValidationError("Object path is required", field="path")
    key = PurePosixPath(path.strip().replace("\\", "/"))
    if key.is_absolute() or any(part in ("..", ".") for part in key.parts):
        raise ValidationError(f"Invalid object path: {path!r}", field="path")
    return str(key)


class ObjectStorage(ABC):
    """put/get/delete by key"""

    @abstractmethod
    async def put(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        """Store content under path and return the normalized key"""

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """Return the stored bytes or raise StorageObjectNotFoundError"""

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete the object; returns False when it did not exist"""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...


class LocalObjectStorage(ObjectStorage):
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or settings.STORAGE_LOCAL_PATH).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local object storage at {self.root}")

    def _file_for(self, path: str) -> Path:
        target = (self.root / normalize_key(path)).resolve()
        if self.root not in target.parents:
            raise ValidationError(f"Invalid object path: {path!r}", field="path")
        return target

    async def put(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        target = self._file_for(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error(f"[Local-Upload] Failed to write {path}: {e}")
            raise StorageError(f"Failed to store {path}", operation="put") from e
        logger.info(f"[Local-Upload] Stored: {path} ({len(content)} bytes)")
        return normalize_key(path)

    async def get(self, path: str) -> bytes:
        target = self._file_for(path)
        if not target.is_file():
            raise StorageObjectNotFoundError(path)
        try:
            async with aiofiles.open(target, "rb") as f:
                return await f.read()
        except OSError as e:
            raise StorageError(f"Failed to read {path}", operation="get") from e

    async def delete(self, path: str) -> bool:
        target = self._file_for(path)
        if not target.is_file():
            return False
        try:
            await aiofiles.os.remove(target)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}", operation="delete") from e
        # Remove now-empty directories up to the root
        parent = target.parent
        while parent != self.root and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
        logger.info(f"[Local-Delete] Deleted: {path}")
        return True

    async def exists(self, path: str) -> bool:
        return self._file_for(path).is_file()


class S3ObjectStorage(ObjectStorage):
    """
    S3-compatible bucket. Set S3_ENDPOINT_URL for R2 or MinIO; leave it
    empty for AWS S3.
    """

    def __init__(self, bucket_name: Optional[str] = None, client=None):
        self._client = client
        self._bucket_name = bucket_name or settings.S3_BUCKET_NAME
        self._initialized = client is not None
        logger.info(f"S3ObjectStorage initialized with bucket: {self._bucket_name}")

    def _get_client(self):
        """Lazy initialization of the S3 client"""
        if self._client is None:
            kwargs = {
                'region_name': settings.AWS_REGION,
                'config': Config(signature_version='s3v4', s3={'addressing_style': 'path'}),
            }
            if settings.S3_ENDPOINT_URL:
                kwargs['endpoint_url'] = settings.S3_ENDPOINT_URL
            if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
                kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY
            else:
                logger.info("S3 client using default credential chain")
            self._client = boto3.client('s3', **kwargs)
            self._ensure_bucket()
        return self._client

    def _ensure_bucket(self):
        """Create bucket if it doesn't exist"""
        if self._initialized:
            return
        try:
            self._client.head_bucket(Bucket=self._bucket_name)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code in ['404', 'NoSuchBucket']:
                try:
                    self._client.create_bucket(Bucket=self._bucket_name)
                    logger.info(f"Created bucket '{self._bucket_name}'")
                except ClientError as create_error:
                    logger.error(f"Failed to create bucket: {create_error}")
            else:
                logger.error(f"Error checking bucket: {e}")
        self._initialized = True

    @retry_with_backoff()
    async def _put(self, key: str, content: bytes, content_type: str) -> None:
        client = self._get_client()
        await asyncio.to_thread(
            client.put_object,
            Bucket=self._bucket_name,
            Key=key,
            Body=content,
            ContentType=content_type,
        )

    async def put(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        key = normalize_key(path)
        try:
            await self._put(key, content, content_type)
        except (ClientError, ConnectionError, TimeoutError) as e:
            raise StorageError(f"Failed to store {key}", operation="put") from e
        logger.info(f"[S3-Upload] Uploaded: {key} ({len(content)} bytes)")
        return key

    @retry_with_backoff()
    async def _get(self, key: str) -> bytes:
        client = self._get_client()
        response = await asyncio.to_thread(client.get_object, Bucket=self._bucket_name, Key=key)
        return await asyncio.to_thread(response['Body'].read)

    async def get(self, path: str) -> bytes:
        key = normalize_key(path)
        try:
            return await self._get(key)
        except ClientError as e:
            if _is_missing_key(e):
                raise StorageObjectNotFoundError(key)
            raise StorageError(f"Failed to read {key}", operation="get") from e
        except (ConnectionError, TimeoutError) as e:
            raise StorageError(f"Failed to read {key}", operation="get") from e

    async def exists(self, path: str) -> bool:
        key = normalize_key(path)
        client = self._get_client()
        try:
            await asyncio.to_thread(client.head_object, Bucket=self._bucket_name, Key=key)
            return True
        except ClientError as e:
            if _is_missing_key(e):
                return False
            raise StorageError(f"Failed to check {key}", operation="exists") from e

    @retry_with_backoff()
    async def _delete(self, key: str) -> None:
        client = self._get_client()
        await asyncio.to_thread(client.delete_object, Bucket=self._bucket_name, Key=key)

    async def delete(self, path: str) -> bool:
        key = normalize_key(path)
        if not await self.exists(key):
            return False
        try:
            await self._delete(key)
        except (ClientError, ConnectionError, TimeoutError) as e:
            raise StorageError(f"Failed to delete {key}", operation="delete") from e
        logger.info(f"[S3-Delete] Deleted: {key}")
        return True


def create_object_storage() -> ObjectStorage:
    """Build the backend selected by STORAGE_MODE"""
    if settings.STORAGE_MODE == "s3":
        return S3ObjectStorage()
    return LocalObjectStorage()
