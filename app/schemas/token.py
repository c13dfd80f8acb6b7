"""
Schémas Pydantic pour les jetons d'identité
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from app.schemas.occupancy import OccupancyRecordResponse
from app.schemas.user import UserSummary
from app.services.token_service import TokenIntent


class IssueTokenRequest(BaseModel):
    """subject_id absent = l'utilisateur connecté"""
    subject_id: Optional[int] = None
    max_consumptions: Optional[int] = Field(default=None, ge=1, le=2)


class IssueTokenResponse(BaseModel):
    code_value: str
    expires_at: datetime
    issued_at: datetime
    max_consumptions: int
    rotation_seconds: int


class RedeemTokenRequest(BaseModel):
    code: str
    intent: TokenIntent = TokenIntent.VERIFY
    resource_id: Optional[int] = None


class RedeemTokenResponse(BaseModel):
    success: bool = True
    subject_id: int
    subject: Optional[UserSummary] = None
    intent: TokenIntent
    consumption_count: int
    max_consumptions: int
    occupancy_record: Optional[OccupancyRecordResponse] = None


class SweepResponse(BaseModel):
    deleted: int
