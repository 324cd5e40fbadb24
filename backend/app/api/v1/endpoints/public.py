"""
Home page data: recent items per kind, file statistics, and the static
index served to visitors without a session.
"""

from fastapi import APIRouter, Depends, Query
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.db.paths import RESOURCE_KINDS
from app.modules.auth.dependencies import get_current_session, get_optional_session
from app.schemas.auth import SessionInfo
from app.schemas.resource import FileStats, PublicFile
from app.services.container import get_public_files
from app.services.public_files import PublicFilesService


router = APIRouter()


def _check_kind(kind: str) -> str:
    if kind not in RESOURCE_KINDS:
        raise ValidationError(f"Unknown resource kind: {kind!r}", field="kind")
    return kind


@router.get("/recent", response_model=List[PublicFile])
async def recent_items(
    kind: str = Query(...),
    limit: int = Query(settings.RECENT_ITEMS_LIMIT, ge=1, le=50),
    session: Optional[SessionInfo] = Depends(get_optional_session),
    public_files: PublicFilesService = Depends(get_public_files),
):
    """Newest resources of a kind; anonymous callers get the static index"""
    _check_kind(kind)
    if session is None:
        return (await public_files.static_index(kind))[:limit]
    return await public_files.recent(kind, limit)


@router.get("/stats", response_model=Dict[str, FileStats])
async def file_stats(
    session: SessionInfo = Depends(get_current_session),
    public_files: PublicFilesService = Depends(get_public_files),
):
    return await public_files.stats()


@router.get("/{kind}/index.json", response_model=List[PublicFile])
async def static_index(
    kind: str,
    public_files: PublicFilesService = Depends(get_public_files),
):
    return await public_files.static_index(_check_kind(kind))
