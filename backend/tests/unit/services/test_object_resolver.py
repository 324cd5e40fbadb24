"""
Unit Tests for the Object Reference Resolver
Tests for: resolve, download, upload validation and rollback
"""
import pytest

from app.core.config import settings
from app.core.exceptions import CourseModuleNotFoundError, StorageError, ValidationError
from app.schemas.resource import Resource, ResourceKind
from app.services.object_resolver import ObjectResolver, build_storage_path, suggested_filename
from app.services.storage_gateway import ObjectGateway


class FailingGateway(ObjectGateway):
    """Gateway whose uploads always fail"""

    def __init__(self):
        self.deleted = []

    async def upload(self, path, content, filename, content_type, role_token):
        raise StorageError("Upload failed with status 502", operation="upload")

    async def download(self, path, role_token):
        raise StorageError("Download failed", operation="download")

    async def delete(self, path, role_token):
        self.deleted.append(path)


def file_resource(**overrides) -> Resource:
    data = {
        "id": "-Nabc",
        "type": "file",
        "description": "Cours 1",
        "created_at": "2024-10-01T09:00:00.000Z",
        "url": "http://localhost:8000/download?path=x",
        "file_type": "pdf",
        "location": "cours/year3/Finance/Cours 1_-Nabc.pdf",
        "size": "0.10 MB",
    }
    data.update(overrides)
    return Resource.model_validate(data)


class TestResolve:
    """Test resolution of records to retrievable references"""

    @pytest.mark.asyncio
    async def test_link_resolves_to_itself(self, services):
        """Test that links need no authentication"""
        link = Resource(key="-Nl", kind=ResourceKind.LINK, url="https://example.org/td")

        resolved = services.resolver.resolve(link)

        assert resolved.url == "https://example.org/td"
        assert resolved.requires_auth is False

    @pytest.mark.asyncio
    async def test_file_resolves_to_gateway_download(self, services):
        resolved = services.resolver.resolve(file_resource())

        assert resolved.requires_auth is True
        assert resolved.url.startswith(f"{settings.STORAGE_GATEWAY_URL}/download?path=")
        assert resolved.filename == "Cours 1.pdf"

    def test_suggested_filename_falls_back_to_location_extension(self):
        resource = file_resource(file_type=None, description="")

        assert suggested_filename(resource) == "fichier.pdf"

    def test_build_storage_path(self):
        path = build_storage_path("td", "year5", "Audit", "Série #2", "-Nk", "xlsx")

        assert path == "td/year5/Audit/S_rie _2_-Nk.xlsx"


class TestDownload:
    """Test downloads through the gateway"""

    @pytest.mark.asyncio
    async def test_download_returns_bytes_and_filename(self, services):
        await services.resources.create_module("cours", "year3", "Finance")
        uploaded = await services.resolver.upload(
            "cours", "year3", "Finance", "slides.pptx", b"pptx-bytes", role_token="t", description="Séance 1"
        )

        downloaded = await services.resolver.download(uploaded, role_token="t")

        assert downloaded.content == b"pptx-bytes"
        assert downloaded.filename == "Séance 1.pptx"
        assert downloaded.content_type.endswith("presentationml.presentation")

    @pytest.mark.asyncio
    async def test_links_are_not_downloaded(self, services):
        link = Resource(key="-Nl", kind=ResourceKind.LINK, url="https://example.org")

        with pytest.raises(ValidationError):
            await services.resolver.download(link, role_token="t")


class TestUpload:
    """Test the storage-first upload path"""

    @pytest.mark.asyncio
    async def test_disallowed_extension(self, services):
        await services.resources.create_module("cours", "year3", "Finance")

        with pytest.raises(ValidationError) as exc_info:
            await services.resolver.upload("cours", "year3", "Finance", "virus.exe", b"MZ", role_token="t")
        assert exc_info.value.field == "file"

    @pytest.mark.asyncio
    async def test_empty_file(self, services):
        await services.resources.create_module("cours", "year3", "Finance")

        with pytest.raises(ValidationError):
            await services.resolver.upload("cours", "year3", "Finance", "vide.pdf", b"", role_token="t")

    @pytest.mark.asyncio
    async def test_missing_module_touches_nothing(self, services, object_storage):
        """Test that nothing is stored when the module does not exist"""
        with pytest.raises(CourseModuleNotFoundError):
            await services.resolver.upload("cours", "year3", "Ghost", "a.pdf", b"%PDF", role_token="t")

        assert not any(object_storage.root.iterdir())

    @pytest.mark.asyncio
    async def test_storage_failure_leaves_tree_untouched(self, services):
        """Test that a failed upload writes no record"""
        await services.resources.create_module("cours", "year3", "Finance")
        resolver = ObjectResolver(services.resources, FailingGateway())

        with pytest.raises(StorageError):
            await resolver.upload("cours", "year3", "Finance", "a.pdf", b"%PDF", role_token="t")

        assert await services.resources.list_resources("cours", "year3", "Finance") == []
        assert await services.tree.read("resources/cours/year3/Finance") == {"_placeholder": True}
