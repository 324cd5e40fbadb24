"""
Resource Tree Service - modules and resources under
resources/{kind}/{year}/{module}/{key}

A module with no real resources is kept alive by the marker entry
`_placeholder: true`. Every resource mutation is a single multi-path
update that also adds or removes the marker, so a module always holds
either at least one resource or exactly the marker.
"""

import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import (
    CourseModuleNotFoundError,
    PortalException,
    ResourceNotFoundError,
    ValidationError,
)
from app.core.logging_config import logger
from app.core.security import sanitize_module_name
from app.db.paths import PLACEHOLDER_KEY, YEARS, ResourcePath
from app.db.tree_store import TreeStore
from app.schemas.resource import ModuleSummary, Resource, ResourceKind
from app.utils.file_utils import format_megabytes

# Path segments taken by the module collection routes
RESERVED_MODULE_NAMES = frozenset({"modules"})


def now_iso() -> str:
    """UTC timestamp with fixed width so string order equals time order"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def real_items(module_value: Any) -> Dict[str, Dict[str, Any]]:
    """Entries of a module that are actual resources (carry an id)"""
    if not isinstance(module_value, dict):
        return {}
    return {
        key: value
        for key, value in module_value.items()
        if key != PLACEHOLDER_KEY and isinstance(value, dict) and value.get("id")
    }


def latest_timestamp(items: Dict[str, Dict[str, Any]]) -> Optional[str]:
    """Max created_at; the first of equal maxima in enumeration order wins"""
    latest = None
    for value in items.values():
        created = value.get("created_at")
        if created and (latest is None or created > latest):
            latest = created
    return latest


# ============================================
# Change notifications
# ============================================

@dataclass(frozen=True)
class TreeChange:
    operation: str
    path: ResourcePath
    detail: Optional[str] = None


ChangeListener = Callable[[TreeChange], Union[None, Awaitable[None]]]


class ChangeChannel:
    """Publish/subscribe for tree mutations; callbacks may be sync or async"""

    def __init__(self):
        self._subscribers: List[ChangeListener] = []

    def subscribe(self, callback: ChangeListener) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, change: TreeChange) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(change)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Change subscriber failed for {change.operation} {change.path}: {e}")


# ============================================
# Service
# ============================================

class ResourceTreeService:

    def __init__(self, tree: TreeStore, gateway=None):
        self.tree = tree
        self.gateway = gateway
        self.changes = ChangeChannel()

    async def _emit(self, operation: str, path: ResourcePath, detail: Optional[str] = None) -> None:
        logger.log_tree_event(operation, str(path))
        await self.changes.publish(TreeChange(operation, path, detail))

    def new_key(self) -> str:
        return self.tree.push_key()

    # ========== Placeholder handling ==========

    @staticmethod
    def prune_placeholder(changes: Dict[str, Any]) -> Dict[str, Any]:
        """Add marker removal to a module-relative update"""
        return {**changes, PLACEHOLDER_KEY: None}

    @staticmethod
    def ensure_non_empty(module_value: Any, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Add the marker to a module-relative update when it would empty the module"""
        remaining = {
            k: v for k, v in real_items(module_value).items()
            if k not in changes or changes[k] is not None
        }
        added = [k for k, v in changes.items() if k != PLACEHOLDER_KEY and v is not None]
        if not remaining and not added:
            return {**changes, PLACEHOLDER_KEY: True}
        return changes

    # ========== Modules ==========

    async def list_modules(self, kind: str, year: str) -> List[ModuleSummary]:
        year_value = await self.tree.read(ResourcePath(kind, year))
        if not isinstance(year_value, dict):
            return []

        modules = []
        for name, module_value in year_value.items():
            if name == PLACEHOLDER_KEY or not isinstance(module_value, dict):
                continue
            items = real_items(module_value)
            modules.append(ModuleSummary(
                name=name,
                file_count=len(items),
                last_resource_timestamp=latest_timestamp(items),
            ))
        return modules

    async def _module_names(self, kind: str, year: str) -> List[str]:
        return [m.name for m in await self.list_modules(kind, year)]

    @staticmethod
    def _clean_module_name(raw_name: str, field: str) -> str:
        name = sanitize_module_name(raw_name)
        if not name:
            raise ValidationError("Module name is required", field=field)
        if name in RESERVED_MODULE_NAMES:
            raise ValidationError(f"'{name}' is reserved and cannot name a module", field=field)
        return name

    async def create_module(self, kind: str, year: str, raw_name: str) -> ModuleSummary:
        name = self._clean_module_name(raw_name, "name")
        path = ResourcePath.module_path(kind, year, name)

        if name in await self._module_names(kind, year):
            raise ValidationError(f"Module '{name}' already exists", field="name")

        await self.tree.write(path, {PLACEHOLDER_KEY: True})
        await self._emit("module_created", path)
        return ModuleSummary(name=name)

    async def rename_module(self, kind: str, year: str, old_name: str, new_name: str) -> ModuleSummary:
        """
        Move the whole subtree to the sanitized new name in one multi-path
        update, so a failure never leaves both names populated.
        """
        name = self._clean_module_name(new_name, "new_name")

        old_path = ResourcePath.module_path(kind, year, old_name)
        subtree = await self.tree.read(old_path)
        if not isinstance(subtree, dict):
            raise CourseModuleNotFoundError(old_name)

        items = real_items(subtree)
        summary = ModuleSummary(name=name, file_count=len(items), last_resource_timestamp=latest_timestamp(items))
        if name == old_name:
            return summary

        if name in await self._module_names(kind, year):
            raise ValidationError(f"Module '{name}' already exists", field="new_name")

        new_path = ResourcePath.module_path(kind, year, name)
        await self.tree.update(ResourcePath(kind, year), {old_name: None, name: subtree})
        await self._emit("module_renamed", new_path, detail=old_name)
        return summary

    async def delete_module(self, kind: str, year: str, name: str, role_token: str = "") -> int:
        """
        Remove the module subtree, then purge its stored objects.
        Object deletion is best-effort; returns the number purged.
        """
        path = ResourcePath.module_path(kind, year, name)
        subtree = await self.tree.read(path)
        if not isinstance(subtree, dict):
            raise CourseModuleNotFoundError(name)

        locations = [
            item.get("location") for item in real_items(subtree).values()
            if item.get("type") == ResourceKind.FILE.value and item.get("location")
        ]

        await self.tree.delete(path)
        await self._emit("module_deleted", path)

        purged = 0
        for location in locations:
            if await self._delete_object(location, role_token):
                purged += 1
        if locations:
            logger.info(f"Module {path}: purged {purged}/{len(locations)} stored objects")
        return purged

    # ========== Resources ==========

    async def _read_module(self, path: ResourcePath) -> Dict[str, Any]:
        value = await self.tree.read(path)
        if not isinstance(value, dict):
            raise CourseModuleNotFoundError(path.module or str(path))
        return value

    async def list_resources(self, kind: str, year: str, module: str) -> List[Resource]:
        module_value = await self._read_module(ResourcePath.module_path(kind, year, module))
        resources = []
        for key, value in real_items(module_value).items():
            try:
                resources.append(Resource.model_validate(value))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed resource {key} in {module}: {e.error_count()} errors")
        return resources

    async def get_resource(self, kind: str, year: str, module: str, key: str) -> Resource:
        value = await self.tree.read(ResourcePath(kind, year, module, key))
        if not isinstance(value, dict) or not value.get("id"):
            raise ResourceNotFoundError(key)
        return Resource.model_validate(value)

    async def _insert(self, path: ResourcePath, resource: Resource) -> Resource:
        module_path = path.parent()
        await self._read_module(module_path)
        await self.tree.update(
            module_path,
            self.prune_placeholder({resource.key: resource.to_stored()}),
        )
        await self._emit("resource_added", path)
        return resource

    async def add_file_resource(
        self,
        kind: str,
        year: str,
        module: str,
        description: str,
        storage_key: str,
        file_type: str,
        size_bytes: int,
        key: Optional[str] = None,
        url: Optional[str] = None,
    ) -> Resource:
        key = key or self.new_key()
        path = ResourcePath(kind, year, module, key)
        if url is None:
            url = self.gateway.download_url(storage_key) if self.gateway else ""
        resource = Resource(
            key=key,
            kind=ResourceKind.FILE,
            description=description,
            created_at=now_iso(),
            url=url,
            file_type=file_type,
            location=storage_key,
            size=format_megabytes(size_bytes),
            size_bytes=size_bytes,
        )
        return await self._insert(path, resource)

    async def add_link_resource(self, kind: str, year: str, module: str, url: str, description: str = "") -> Resource:
        url = (url or "").strip()
        if not url.startswith(("http://", "https://")):
            raise ValidationError("Link must be an http(s) URL", field="url")
        key = self.new_key()
        resource = Resource(
            key=key,
            kind=ResourceKind.LINK,
            description=description or url,
            created_at=now_iso(),
            url=url,
        )
        return await self._insert(ResourcePath(kind, year, module, key), resource)

    async def delete_resource(self, kind: str, year: str, module: str, key: str, role_token: str = "") -> None:
        """
        Delete the stored object (best-effort), then the record; the
        marker comes back in the same update when the module empties.
        """
        module_path = ResourcePath.module_path(kind, year, module)
        module_value = await self._read_module(module_path)
        record = real_items(module_value).get(key)
        if record is None:
            raise ResourceNotFoundError(key)

        if record.get("type") == ResourceKind.FILE.value and record.get("location"):
            await self._delete_object(record["location"], role_token)

        await self.tree.update(module_path, self.ensure_non_empty(module_value, {key: None}))
        await self._emit("resource_deleted", module_path.child(key))

    async def _delete_object(self, location: str, role_token: str) -> bool:
        if self.gateway is None:
            return False
        try:
            await self.gateway.delete(location, role_token)
            return True
        except PortalException as e:
            logger.warning(f"Stored object delete failed for {location}: {e.message}")
            return False

    # ========== Whole-kind scans ==========

    async def iter_kind(self, kind: str, years=None):
        """Yield (year, module, record) for every real resource of a kind"""
        kind_value = await self.tree.read(ResourcePath(kind))
        if not isinstance(kind_value, dict):
            return
        for year in years or YEARS:
            year_value = kind_value.get(year)
            if not isinstance(year_value, dict):
                continue
            for module, module_value in year_value.items():
                for record in real_items(module_value).values():
                    yield year, module, record
