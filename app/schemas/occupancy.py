"""
Schémas Pydantic pour la présence et l'accès
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from app.models.verification_attempt import VerificationMethod
from app.services.occupancy_service import OccupancyState


class AttendanceRequest(BaseModel):
    """subject_id absent = l'utilisateur connecté"""
    subject_id: Optional[int] = None
    method: VerificationMethod = VerificationMethod.MANUAL
    match_score: Optional[float] = None


class OccupancyRecordResponse(BaseModel):
    id: int
    subject_id: int
    resource_id: int
    entry_time: datetime
    exit_time: Optional[datetime] = None
    method: VerificationMethod

    class Config:
        from_attributes = True


class AttendanceResponse(BaseModel):
    success: bool = True
    occupancy_record_id: int
    record: OccupancyRecordResponse


class OccupancyStateResponse(BaseModel):
    subject_id: int
    resource_id: int
    state: OccupancyState
