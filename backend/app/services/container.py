"""
Service container - every service is built once at startup and shared
through app.state; endpoints receive them via Depends.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import settings
from app.core.database import create_engine_for, create_session_factory, get_database_url, init_db
from app.core.logging_config import logger
from app.db.tree_store import MemoryTreeStore, SqlTreeStore, TreeStore
from app.services.auth_service import AuthService
from app.services.bot_check import TurnstileVerifier
from app.services.cache_service import create_cache
from app.services.credential_store import CredentialStore
from app.services.object_resolver import ObjectResolver
from app.services.object_storage import ObjectStorage, create_object_storage
from app.services.public_files import PublicFilesService
from app.services.resource_tree import ResourceTreeService
from app.services.seminar_service import SeminarService
from app.services.storage_gateway import HttpStorageGateway, LocalGateway, ObjectGateway


@dataclass
class ServiceContainer:
    tree: TreeStore
    cache: object
    storage: ObjectStorage
    gateway: ObjectGateway
    credentials: CredentialStore
    bot_check: TurnstileVerifier
    auth: AuthService
    resources: ResourceTreeService
    resolver: ObjectResolver
    seminars: SeminarService
    public_files: PublicFilesService
    engine: Optional[AsyncEngine] = None

    async def aclose(self) -> None:
        await self.gateway.close()
        await self.bot_check.close()
        await self.cache.close()
        await self.tree.close()
        if self.engine is not None:
            await self.engine.dispose()


async def build_container(
    tree: Optional[TreeStore] = None,
    storage: Optional[ObjectStorage] = None,
    gateway: Optional[ObjectGateway] = None,
    cache=None,
    bot_check: Optional[TurnstileVerifier] = None,
    static_dir: Optional[Path] = None,
) -> ServiceContainer:
    """Wire services from settings; any collaborator can be passed in instead"""
    engine = None
    if tree is None:
        if settings.TREE_BACKEND == "memory":
            tree = MemoryTreeStore()
        else:
            engine = create_engine_for(get_database_url())
            await init_db(engine)
            tree = SqlTreeStore(create_session_factory(engine))

    storage = storage or create_object_storage()
    if gateway is None:
        if settings.STORAGE_GATEWAY_MODE == "remote":
            gateway = HttpStorageGateway()
        else:
            gateway = LocalGateway(storage)
    cache = cache if cache is not None else create_cache()
    bot_check = bot_check or TurnstileVerifier()

    credentials = CredentialStore(tree)
    resources = ResourceTreeService(tree, gateway)
    public_files = PublicFilesService(resources, cache, static_dir)
    resources.changes.subscribe(public_files.invalidate)

    container = ServiceContainer(
        tree=tree,
        cache=cache,
        storage=storage,
        gateway=gateway,
        credentials=credentials,
        bot_check=bot_check,
        auth=AuthService(credentials, tree, bot_check),
        resources=resources,
        resolver=ObjectResolver(resources, gateway),
        seminars=SeminarService(tree, cache),
        public_files=public_files,
        engine=engine,
    )
    logger.info(
        f"Services ready (tree={type(tree).__name__}, storage={type(storage).__name__}, "
        f"gateway={type(gateway).__name__}, cache={type(cache).__name__})"
    )
    return container


# ========== FastAPI dependencies ==========

def get_container(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_credential_store(request: Request) -> CredentialStore:
    return get_container(request).credentials


def get_auth_service(request: Request) -> AuthService:
    return get_container(request).auth


def get_resource_tree(request: Request) -> ResourceTreeService:
    return get_container(request).resources


def get_resolver(request: Request) -> ObjectResolver:
    return get_container(request).resolver


def get_seminar_service(request: Request) -> SeminarService:
    return get_container(request).seminars


def get_public_files(request: Request) -> PublicFilesService:
    return get_container(request).public_files


def get_object_storage(request: Request) -> ObjectStorage:
    return get_container(request).storage
