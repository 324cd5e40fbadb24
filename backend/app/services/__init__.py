from app.services.cache_service import LocalCache, RedisCache, create_cache
from app.services.credential_store import CredentialStore
from app.services.resource_tree import ResourceTreeService, ChangeChannel, TreeChange
from app.services.object_storage import ObjectStorage, LocalObjectStorage, S3ObjectStorage
from app.services.storage_gateway import ObjectGateway, LocalGateway, HttpStorageGateway
from app.services.object_resolver import ObjectResolver
from app.services.bot_check import TurnstileVerifier
from app.services.auth_service import AuthService
from app.services.seminar_service import SeminarService
from app.services.public_files import PublicFilesService

__all__ = [
    # Storage and cache
    "LocalCache",
    "RedisCache",
    "create_cache",
    "ObjectStorage",
    "LocalObjectStorage",
    "S3ObjectStorage",
    "ObjectGateway",
    "LocalGateway",
    "HttpStorageGateway",
    # Portal services
    "CredentialStore",
    "ResourceTreeService",
    "ChangeChannel",
    "TreeChange",
    "ObjectResolver",
    "TurnstileVerifier",
    "AuthService",
    "SeminarService",
    "PublicFilesService",
]
