"""
Storage gateway - /upload, /download and /delete at the application root.

Every call carries the role token as a bearer; uploads and deletes
require the admin role.
"""

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel
from urllib.parse import quote

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.modules.auth.dependencies import get_current_session, require_admin
from app.schemas.auth import SessionInfo
from app.services.container import get_object_storage
from app.services.object_storage import ObjectStorage
from app.utils.file_utils import get_mime_type, sanitize_download_filename


router = APIRouter(tags=["Storage Gateway"])


class DeleteRequest(BaseModel):
    path: str


@router.post("/upload")
async def upload_object(
    path: str = Form(...),
    file: UploadFile = File(...),
    admin: SessionInfo = Depends(require_admin),
    storage: ObjectStorage = Depends(get_object_storage),
):
    content = await file.read(settings.MAX_UPLOAD_SIZE + 1)
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File too large. Maximum size is {settings.MAX_UPLOAD_SIZE // 1024 // 1024}MB",
            field="file",
        )
    stored = await storage.put(path, content, file.content_type or get_mime_type(path))
    return {"path": stored, "size": len(content), "url": settings.get_download_url(stored)}


@router.get("/download")
async def download_object(
    path: str = Query(...),
    session: SessionInfo = Depends(get_current_session),
    storage: ObjectStorage = Depends(get_object_storage),
):
    content = await storage.get(path)
    filename = sanitize_download_filename(path.rsplit("/", 1)[-1])
    return Response(
        content=content,
        media_type=get_mime_type(filename),
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.delete("/delete")
async def delete_object(
    data: DeleteRequest,
    admin: SessionInfo = Depends(require_admin),
    storage: ObjectStorage = Depends(get_object_storage),
):
    deleted = await storage.delete(data.path)
    return {"path": data.path, "deleted": deleted}
