"""
Routes de présence (séances) et d'accès aux services
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_attendance_service
from app.models.user import User
from app.routers.auth import (
    get_current_user, require_operator, ensure_self_or_staff, ensure_manual_unless_staff
)
from app.schemas.occupancy import (
    AttendanceRequest, AttendanceResponse, OccupancyRecordResponse, OccupancyStateResponse
)
from app.services.occupancy_service import AttendanceStateMachine

router = APIRouter(prefix="/attendance", tags=["Présence"])


@router.post("/{resource_id}/entry", response_model=AttendanceResponse)
async def record_entry(
    resource_id: int,
    data: AttendanceRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: AttendanceStateMachine = Depends(get_attendance_service)
):
    """Entrée directe (opérateur, ou auto-pointage de l'étudiant)"""
    subject_id = data.subject_id or current_user.id
    ensure_self_or_staff(current_user, subject_id)
    ensure_manual_unless_staff(current_user, data.method, data.match_score)
    record = await service.enter(
        db, subject_id, resource_id,
        method=data.method,
        operator_id=current_user.id if current_user.id != subject_id else None,
        match_score=data.match_score,
    )
    return AttendanceResponse(
        occupancy_record_id=record.id,
        record=OccupancyRecordResponse.model_validate(record),
    )


@router.post("/{resource_id}/exit", response_model=AttendanceResponse)
async def record_exit(
    resource_id: int,
    data: AttendanceRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: AttendanceStateMachine = Depends(get_attendance_service)
):
    """Sortie"""
    subject_id = data.subject_id or current_user.id
    ensure_self_or_staff(current_user, subject_id)
    ensure_manual_unless_staff(current_user, data.method, data.match_score)
    record = await service.exit(db, subject_id, resource_id)
    return AttendanceResponse(
        occupancy_record_id=record.id,
        record=OccupancyRecordResponse.model_validate(record),
    )


@router.get("/{resource_id}/state/{subject_id}", response_model=OccupancyStateResponse)
async def get_state(
    resource_id: int,
    subject_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: AttendanceStateMachine = Depends(get_attendance_service)
):
    ensure_self_or_staff(current_user, subject_id)
    state = await service.state(db, subject_id, resource_id)
    return OccupancyStateResponse(subject_id=subject_id, resource_id=resource_id, state=state)


@router.get("/{resource_id}/open", response_model=List[OccupancyRecordResponse])
async def list_open(
    resource_id: int,
    operator: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    service: AttendanceStateMachine = Depends(get_attendance_service)
):
    """Sujets actuellement présents"""
    return await service.open_records(db, resource_id)
