"""
Object Reference Resolver - turns resource records into retrievable
artifacts and runs the upload path.

Never writes to the tree directly: uploads go storage-first, then the
record is added through ResourceTreeService.
"""

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

from app.core.config import settings
from app.core.exceptions import PortalException, ValidationError
from app.core.logging_config import logger
from app.schemas.resource import Resource, ResolvedResource
from app.services.resource_tree import ResourceTreeService
from app.services.storage_gateway import ObjectGateway
from app.utils.file_utils import file_extension, get_mime_type, sanitize_storage_name


@dataclass
class DownloadedObject:
    content: bytes
    filename: str
    content_type: str


def build_storage_path(kind: str, year: str, module: str, descriptive_name: str, key: str, ext: str) -> str:
    """{kind}/{year}/{module}/{sanitized name}_{key}.{ext}"""
    base = f"{kind}/{year}/{module}/{sanitize_storage_name(descriptive_name)}_{key}"
    return f"{base}.{ext}" if ext else base


def suggested_filename(resource: Resource) -> str:
    ext = resource.file_type or file_extension(resource.location)
    name = resource.description or "fichier"
    return f"{name}.{ext}" if ext else name


class ObjectResolver:

    def __init__(self, tree_service: ResourceTreeService, gateway: ObjectGateway):
        self.tree_service = tree_service
        self.gateway = gateway

    def resolve(self, resource: Resource) -> ResolvedResource:
        """Links resolve to their URL; files to the gateway download URL (bearer required)"""
        if not resource.is_file:
            return ResolvedResource(url=resource.url, requires_auth=False)
        return ResolvedResource(
            url=self.gateway.download_url(resource.location),
            requires_auth=True,
            filename=suggested_filename(resource),
        )

    async def download(self, resource: Resource, role_token: str) -> DownloadedObject:
        if not resource.is_file:
            raise ValidationError("Link resources are opened directly, not downloaded", field="type")
        content = await self.gateway.download(resource.location, role_token)
        filename = suggested_filename(resource)
        return DownloadedObject(
            content=content,
            filename=filename,
            content_type=get_mime_type(filename),
        )

    @staticmethod
    def validate_upload(filename: str, size: int) -> str:
        """Return the extension or raise ValidationError"""
        ext = file_extension(filename)
        if ext not in settings.ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"File type '.{ext}' not allowed. Allowed: {', '.join(settings.ALLOWED_EXTENSIONS)}",
                field="file",
            )
        if size <= 0:
            raise ValidationError("File is empty", field="file")
        if size > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"File too large. Maximum size is {settings.MAX_UPLOAD_SIZE // 1024 // 1024}MB",
                field="file",
            )
        return ext

    async def upload(
        self,
        kind: str,
        year: str,
        module: str,
        filename: str,
        content: bytes,
        role_token: str,
        description: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> Resource:
        """
        Store the blob, then write the record. A failed storage write
        leaves the tree untouched.
        """
        ext = self.validate_upload(filename, len(content))
        descriptive_name = (description or "").strip() or PurePosixPath(filename).stem

        # Fail before touching storage when the module is gone
        await self.tree_service.list_resources(kind, year, module)

        key = self.tree_service.new_key()
        path = build_storage_path(kind, year, module, descriptive_name, key, ext)
        stored_path = await self.gateway.upload(
            path,
            content,
            filename,
            content_type or get_mime_type(filename),
            role_token,
        )

        try:
            return await self.tree_service.add_file_resource(
                kind,
                year,
                module,
                description=descriptive_name,
                storage_key=stored_path,
                file_type=ext,
                size_bytes=len(content),
                key=key,
                url=self.gateway.download_url(stored_path),
            )
        except PortalException:
            logger.error(f"Record write failed after upload, removing object {stored_path}")
            try:
                await self.gateway.delete(stored_path, role_token)
            except PortalException as cleanup_error:
                logger.warning(f"Orphaned object {stored_path}: {cleanup_error.message}")
            raise
