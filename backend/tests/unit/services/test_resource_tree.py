"""
Unit Tests for the Resource Tree Service
Tests for: module lifecycle, resources, placeholder marker, change channel
"""
import pytest

from app.core.exceptions import CourseModuleNotFoundError, ResourceNotFoundError, ValidationError
from app.db.paths import PLACEHOLDER_KEY, ResourcePath
from app.services.resource_tree import ResourceTreeService, latest_timestamp, real_items

PDF_BYTES = b"%PDF-1.4 rapport final"


async def module_value(tree, module, kind="cours", year="year3"):
    return await tree.read(ResourcePath(kind, year, module))


class TestModules:
    """Test module creation, rename and delete"""

    @pytest.mark.asyncio
    async def test_create_module_lists_with_zero_files(self, services):
        """Test that a new module is listed with file_count 0"""
        created = await services.resources.create_module("cours", "year3", "Module Gestion")

        modules = await services.resources.list_modules("cours", "year3")

        assert created.name == "Module Gestion"
        assert [(m.name, m.file_count) for m in modules] == [("Module Gestion", 0)]
        assert await module_value(services.tree, "Module Gestion") == {PLACEHOLDER_KEY: True}

    @pytest.mark.asyncio
    async def test_create_module_sanitizes_name(self, services):
        """Test that path-unsafe characters become underscores"""
        created = await services.resources.create_module("td", "year4", "Compta.Générale/2")

        assert created.name == "Compta_Générale_2"
        assert await services.tree.exists(ResourcePath("td", "year4", "Compta_Générale_2"))

    @pytest.mark.asyncio
    async def test_create_duplicate_module(self, services):
        await services.resources.create_module("cours", "year3", "Finance")

        with pytest.raises(ValidationError):
            await services.resources.create_module("cours", "year3", "Finance")

    @pytest.mark.asyncio
    async def test_create_module_unknown_year(self, services):
        """Test that only year3/year4/year5 are accepted"""
        with pytest.raises(ValidationError):
            await services.resources.create_module("cours", "year9", "Finance")

    @pytest.mark.asyncio
    async def test_list_modules_of_empty_year(self, services):
        assert await services.resources.list_modules("td", "year5") == []

    @pytest.mark.asyncio
    async def test_rename_moves_resources(self, services):
        """Test that rename carries every resource to the new name"""
        await services.resources.create_module("cours", "year3", "Finance")
        link = await services.resources.add_link_resource(
            "cours", "year3", "Finance", "https://example.org/cours", "Support"
        )

        summary = await services.resources.rename_module("cours", "year3", "Finance", "Finance [S1]")

        assert summary.name == "Finance _S1_"
        assert summary.file_count == 1
        assert await module_value(services.tree, "Finance") is None
        moved = await services.resources.list_resources("cours", "year3", "Finance _S1_")
        assert [r.key for r in moved] == [link.key]

    @pytest.mark.asyncio
    async def test_rename_onto_existing_module(self, services):
        """Test that a rename collision changes nothing"""
        await services.resources.create_module("cours", "year3", "A")
        await services.resources.create_module("cours", "year3", "B")

        with pytest.raises(ValidationError):
            await services.resources.rename_module("cours", "year3", "A", "B")

        names = sorted(m.name for m in await services.resources.list_modules("cours", "year3"))
        assert names == ["A", "B"]

    @pytest.mark.asyncio
    async def test_route_segment_cannot_name_a_module(self, services):
        """Test that 'modules' is refused on create and rename"""
        await services.resources.create_module("cours", "year3", "Finance")

        with pytest.raises(ValidationError) as created:
            await services.resources.create_module("cours", "year3", " modules ")
        with pytest.raises(ValidationError) as renamed:
            await services.resources.rename_module("cours", "year3", "Finance", "modules")

        assert created.value.details["field"] == "name"
        assert renamed.value.details["field"] == "new_name"
        names = [m.name for m in await services.resources.list_modules("cours", "year3")]
        assert names == ["Finance"]

    @pytest.mark.asyncio
    async def test_rename_missing_module(self, services):
        with pytest.raises(CourseModuleNotFoundError):
            await services.resources.rename_module("cours", "year3", "Ghost", "Other")

    @pytest.mark.asyncio
    async def test_delete_module_purges_objects(self, services):
        """Test that module delete removes the subtree and its stored files"""
        await services.resources.create_module("cours", "year3", "Finance")
        resource = await services.resolver.upload(
            "cours", "year3", "Finance", "rapport.pdf", PDF_BYTES, role_token="t"
        )
        assert await services.storage.exists(resource.location)

        purged = await services.resources.delete_module("cours", "year3", "Finance")

        assert purged == 1
        assert await module_value(services.tree, "Finance") is None
        assert not await services.storage.exists(resource.location)

    @pytest.mark.asyncio
    async def test_delete_missing_module(self, services):
        with pytest.raises(CourseModuleNotFoundError):
            await services.resources.delete_module("cours", "year3", "Ghost")


class TestResources:
    """Test resource add/list/delete and the placeholder marker"""

    @pytest.mark.asyncio
    async def test_upload_then_delete_keeps_module(self, services):
        """Test the full upload and delete cycle of one file"""
        await services.resources.create_module("cours", "year3", "Module Gestion")

        resource = await services.resolver.upload(
            "cours", "year3", "Module Gestion", "rapport.pdf", PDF_BYTES,
            role_token="t", description="Rapport Final",
        )

        listed = await services.resources.list_resources("cours", "year3", "Module Gestion")
        assert len(listed) == 1
        assert listed[0].description == "Rapport Final"
        assert listed[0].file_type == "pdf"
        assert listed[0].key == resource.key
        modules = await services.resources.list_modules("cours", "year3")
        assert modules[0].file_count == 1
        assert modules[0].last_resource_timestamp == resource.created_at
        assert PLACEHOLDER_KEY not in await module_value(services.tree, "Module Gestion")

        await services.resources.delete_resource("cours", "year3", "Module Gestion", resource.key)

        assert await services.resources.list_resources("cours", "year3", "Module Gestion") == []
        assert await module_value(services.tree, "Module Gestion") == {PLACEHOLDER_KEY: True}
        modules = await services.resources.list_modules("cours", "year3")
        assert [(m.name, m.file_count) for m in modules] == [("Module Gestion", 0)]
        assert not await services.storage.exists(resource.location)

    @pytest.mark.asyncio
    async def test_file_record_fields(self, services):
        """Test size formatting, storage location and download URL"""
        await services.resources.create_module("td", "year4", "Audit")

        resource = await services.resolver.upload(
            "td", "year4", "Audit", "Corrigé TD1.docx", b"x" * (3 * 1024 * 1024),
            role_token="t",
        )

        assert resource.size == "3.00 MB"
        assert resource.file_type == "docx"
        assert resource.description == "Corrigé TD1"
        assert resource.location == f"td/year4/Audit/Corrig_ TD1_{resource.key}.docx"
        assert "download?path=" in resource.url

    @pytest.mark.asyncio
    async def test_link_resource(self, services):
        """Test that links carry no file fields and default their description"""
        await services.resources.create_module("cours", "year5", "Strategie")

        link = await services.resources.add_link_resource("cours", "year5", "Strategie", "https://example.org/x")

        stored = await services.tree.read(ResourcePath("cours", "year5", "Strategie", link.key))
        assert stored["type"] == "link"
        assert stored["description"] == "https://example.org/x"
        assert "location" not in stored and "size" not in stored

    @pytest.mark.asyncio
    async def test_link_must_be_http(self, services):
        await services.resources.create_module("cours", "year5", "Strategie")

        with pytest.raises(ValidationError):
            await services.resources.add_link_resource("cours", "year5", "Strategie", "javascript:alert(1)")

    @pytest.mark.asyncio
    async def test_add_to_missing_module(self, services):
        """Test that resources are never added to a module that does not exist"""
        with pytest.raises(CourseModuleNotFoundError):
            await services.resources.add_link_resource("cours", "year3", "Ghost", "https://example.org")

        assert await services.tree.read("resources") is None

    @pytest.mark.asyncio
    async def test_delete_one_of_two_keeps_no_placeholder(self, services):
        """Test that the marker only returns when the module empties"""
        await services.resources.create_module("cours", "year3", "Finance")
        first = await services.resources.add_link_resource("cours", "year3", "Finance", "https://a.example")
        await services.resources.add_link_resource("cours", "year3", "Finance", "https://b.example")

        await services.resources.delete_resource("cours", "year3", "Finance", first.key)

        value = await module_value(services.tree, "Finance")
        assert PLACEHOLDER_KEY not in value
        assert len(real_items(value)) == 1

    @pytest.mark.asyncio
    async def test_delete_unknown_resource(self, services):
        await services.resources.create_module("cours", "year3", "Finance")

        with pytest.raises(ResourceNotFoundError):
            await services.resources.delete_resource("cours", "year3", "Finance", "-NoSuchKey")

    @pytest.mark.asyncio
    async def test_list_missing_module(self, services):
        with pytest.raises(CourseModuleNotFoundError):
            await services.resources.list_resources("cours", "year3", "Ghost")


class TestPlaceholderHelpers:
    """Test the marker helpers on module-relative updates"""

    def test_prune_placeholder_adds_removal(self):
        changes = ResourceTreeService.prune_placeholder({"k1": {"id": "k1"}})

        assert changes == {"k1": {"id": "k1"}, PLACEHOLDER_KEY: None}

    def test_ensure_non_empty_when_last_removed(self):
        """Test that removing the only resource brings the marker back"""
        module = {"k1": {"id": "k1"}}

        changes = ResourceTreeService.ensure_non_empty(module, {"k1": None})

        assert changes == {"k1": None, PLACEHOLDER_KEY: True}

    def test_ensure_non_empty_with_survivors(self):
        module = {"k1": {"id": "k1"}, "k2": {"id": "k2"}}

        assert ResourceTreeService.ensure_non_empty(module, {"k1": None}) == {"k1": None}

    def test_latest_timestamp_picks_max(self):
        items = {
            "a": {"created_at": "2024-01-02T10:00:00.000Z"},
            "b": {"created_at": "2024-03-01T08:00:00.000Z"},
            "c": {},
        }

        assert latest_timestamp(items) == "2024-03-01T08:00:00.000Z"


class TestChangeChannel:
    """Test change notifications"""

    @pytest.mark.asyncio
    async def test_mutations_publish_changes(self, services):
        """Test that subscribers see each mutation in order"""
        seen = []
        services.resources.changes.subscribe(lambda change: seen.append(change.operation))

        await services.resources.create_module("cours", "year3", "Finance")
        link = await services.resources.add_link_resource("cours", "year3", "Finance", "https://a.example")
        await services.resources.delete_resource("cours", "year3", "Finance", link.key)
        await services.resources.rename_module("cours", "year3", "Finance", "Finance 2")
        await services.resources.delete_module("cours", "year3", "Finance 2")

        assert seen == [
            "module_created",
            "resource_added",
            "resource_deleted",
            "module_renamed",
            "module_deleted",
        ]

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_writes(self, services):
        def broken(change):
            raise RuntimeError("listener broke")

        services.resources.changes.subscribe(broken)

        created = await services.resources.create_module("cours", "year3", "Finance")

        assert created.name == "Finance"
