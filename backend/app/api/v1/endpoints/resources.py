"""
Course/TD resources: modules per (kind, year) and the files and links
inside them. Reads need a session; writes need the admin role.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import Response
from typing import List, Optional
from urllib.parse import quote

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.modules.auth.dependencies import get_current_session, get_role_token, require_admin
from app.schemas.auth import SessionInfo
from app.schemas.resource import (
    LinkCreate,
    ModuleCreate,
    ModuleRename,
    ModuleSummary,
    Resource,
    ResourceList,
    ResolvedResource,
)
from app.services.container import get_resolver, get_resource_tree
from app.services.object_resolver import ObjectResolver
from app.services.resource_tree import ResourceTreeService
from app.utils.file_utils import sanitize_download_filename


router = APIRouter()


# ========== Modules ==========

@router.get("/{kind}/{year}/modules", response_model=List[ModuleSummary])
async def list_modules(
    kind: str,
    year: str,
    session: SessionInfo = Depends(get_current_session),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    """Modules of a year with file counts; empty list when the year has none"""
    return await tree.list_modules(kind, year)


@router.post("/{kind}/{year}/modules", response_model=ModuleSummary, status_code=status.HTTP_201_CREATED)
async def create_module(
    kind: str,
    year: str,
    data: ModuleCreate,
    admin: SessionInfo = Depends(require_admin),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    return await tree.create_module(kind, year, data.name)


@router.patch("/{kind}/{year}/modules/{module}", response_model=ModuleSummary)
async def rename_module(
    kind: str,
    year: str,
    module: str,
    data: ModuleRename,
    admin: SessionInfo = Depends(require_admin),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    return await tree.rename_module(kind, year, module, data.new_name)


@router.delete("/{kind}/{year}/modules/{module}")
async def delete_module(
    kind: str,
    year: str,
    module: str,
    admin: SessionInfo = Depends(require_admin),
    role_token: str = Depends(get_role_token),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    """Delete the module and every stored object it references"""
    purged = await tree.delete_module(kind, year, module, role_token)
    return {"deleted": module, "objects_purged": purged}


# ========== Resources ==========

@router.get("/{kind}/{year}/{module}", response_model=ResourceList)
async def list_resources(
    kind: str,
    year: str,
    module: str,
    session: SessionInfo = Depends(get_current_session),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    resources = await tree.list_resources(kind, year, module)
    return ResourceList(module=module, resources=resources)


@router.post("/{kind}/{year}/{module}/files", response_model=Resource, status_code=status.HTTP_201_CREATED)
async def upload_file(
    kind: str,
    year: str,
    module: str,
    file: UploadFile = File(...),
    description: Optional[str] = Form(None),
    admin: SessionInfo = Depends(require_admin),
    role_token: str = Depends(get_role_token),
    resolver: ObjectResolver = Depends(get_resolver),
):
    """Store the file through the gateway, then add its record to the module"""
    if not file.filename:
        raise ValidationError("File name is required", field="file")
    content = await file.read(settings.MAX_UPLOAD_SIZE + 1)
    resource = await resolver.upload(
        kind,
        year,
        module,
        filename=file.filename,
        content=content,
        role_token=role_token,
        description=description,
        content_type=file.content_type,
    )
    logger.info(f"Uploaded {file.filename} to {kind}/{year}/{module} as {resource.key}")
    return resource


@router.post("/{kind}/{year}/{module}/links", response_model=Resource, status_code=status.HTTP_201_CREATED)
async def add_link(
    kind: str,
    year: str,
    module: str,
    data: LinkCreate,
    admin: SessionInfo = Depends(require_admin),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    return await tree.add_link_resource(kind, year, module, data.url, data.description)


@router.delete("/{kind}/{year}/{module}/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_resource(
    kind: str,
    year: str,
    module: str,
    key: str,
    admin: SessionInfo = Depends(require_admin),
    role_token: str = Depends(get_role_token),
    tree: ResourceTreeService = Depends(get_resource_tree),
):
    await tree.delete_resource(kind, year, module, key, role_token)


@router.get("/{kind}/{year}/{module}/{key}/resolve", response_model=ResolvedResource)
async def resolve_resource(
    kind: str,
    year: str,
    module: str,
    key: str,
    session: SessionInfo = Depends(get_current_session),
    tree: ResourceTreeService = Depends(get_resource_tree),
    resolver: ObjectResolver = Depends(get_resolver),
):
    """Where to fetch a resource: the link itself or the authenticated download URL"""
    resource = await tree.get_resource(kind, year, module, key)
    return resolver.resolve(resource)


@router.get("/{kind}/{year}/{module}/{key}/download")
async def download_resource(
    kind: str,
    year: str,
    module: str,
    key: str,
    session: SessionInfo = Depends(get_current_session),
    role_token: str = Depends(get_role_token),
    tree: ResourceTreeService = Depends(get_resource_tree),
    resolver: ObjectResolver = Depends(get_resolver),
):
    resource = await tree.get_resource(kind, year, module, key)
    downloaded = await resolver.download(resource, role_token)
    filename = sanitize_download_filename(downloaded.filename)
    return Response(
        content=downloaded.content,
        media_type=downloaded.content_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}",
            "Content-Length": str(len(downloaded.content)),
        },
    )
