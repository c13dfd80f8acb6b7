"""
Schémas Pydantic pour la biométrie
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from app.models.verification_attempt import AttemptMode, AttemptOutcome, VerificationMethod


class FaceCaptureRequest(BaseModel):
    """Capture du visage en base64"""
    image_base64: str


class VerifyRequest(FaceCaptureRequest):
    """Requête de vérification biométrique"""
    strict: Optional[bool] = None


class Resolution(BaseModel):
    width: int
    height: int


class QualityReportResponse(BaseModel):
    score: int
    brightness: int
    sharpness: int
    subject_detected: bool
    subject_centered: bool
    resolution: Resolution
    issues: List[str]


class EnrollResponse(BaseModel):
    accepted: bool
    reason_code: Optional[str] = None
    message: str
    quality_report: Optional[QualityReportResponse] = None
    template_id: Optional[int] = None
    model_version: Optional[str] = None


class VerifyResponse(BaseModel):
    accepted: bool
    confidence: Optional[float] = None
    threshold: Optional[float] = None
    reason_code: Optional[str] = None
    message: str
    quality_report: Optional[QualityReportResponse] = None
    liveness_single_frame: Optional[bool] = None


class VerificationAttemptResponse(BaseModel):
    id: int
    subject_id: Optional[int]
    mode: AttemptMode
    outcome: AttemptOutcome
    method: VerificationMethod
    confidence: Optional[float]
    reason_code: Optional[str]
    resource_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class EnrollmentStatusResponse(BaseModel):
    subject_id: int
    is_enrolled: bool
    template_id: Optional[int] = None
    model_version: Optional[str] = None
    captured_at: Optional[datetime] = None


class TemplateMetadataResponse(BaseModel):
    """Métadonnées d'un gabarit (jamais le vecteur chiffré ni le nonce)"""
    id: int
    modality: str
    model_version: str
    encryption_scheme: str
    embedding_dimension: int
    quality_score_at_capture: Optional[float]
    captured_at: datetime
    retired_at: Optional[datetime] = None
    is_active: bool

    class Config:
        from_attributes = True
