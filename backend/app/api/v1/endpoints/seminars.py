from fastapi import APIRouter, Depends, status
from typing import List

from app.modules.auth.dependencies import require_admin
from app.schemas.auth import SessionInfo
from app.schemas.seminar import SeminarCreate, SeminarView
from app.services.container import get_seminar_service
from app.services.seminar_service import SeminarService


router = APIRouter()


@router.get("", response_model=List[SeminarView])
async def list_seminars(seminars: SeminarService = Depends(get_seminar_service)):
    """Public seminar list, newest date first, with past/ongoing/upcoming status"""
    return await seminars.list_seminars()


@router.get("/{seminar_id}", response_model=SeminarView)
async def get_seminar(seminar_id: str, seminars: SeminarService = Depends(get_seminar_service)):
    return await seminars.get_seminar(seminar_id)


@router.post("", response_model=SeminarView, status_code=status.HTTP_201_CREATED)
async def create_seminar(
    data: SeminarCreate,
    admin: SessionInfo = Depends(require_admin),
    seminars: SeminarService = Depends(get_seminar_service),
):
    return await seminars.create_seminar(data)


@router.put("/{seminar_id}", response_model=SeminarView)
async def update_seminar(
    seminar_id: str,
    data: SeminarCreate,
    admin: SessionInfo = Depends(require_admin),
    seminars: SeminarService = Depends(get_seminar_service),
):
    return await seminars.update_seminar(seminar_id, data)


@router.delete("/{seminar_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_seminar(
    seminar_id: str,
    admin: SessionInfo = Depends(require_admin),
    seminars: SeminarService = Depends(get_seminar_service),
):
    await seminars.delete_seminar(seminar_id)
