"""
Routes d'enrôlement et de vérification faciale
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_audit_service, get_biometric_service
from app.models.user import User
from app.routers.auth import get_current_user, require_operator, ensure_self_or_staff
from app.schemas.biometric import (
    FaceCaptureRequest, VerifyRequest, EnrollResponse, VerifyResponse,
    VerificationAttemptResponse, EnrollmentStatusResponse, TemplateMetadataResponse
)
from app.services.audit_service import AuditService
from app.services.biometric_service import BiometricService

router = APIRouter(prefix="/biometric", tags=["Biométrie"])


def _operator_id(current_user: User, subject_id: int):
    return current_user.id if current_user.id != subject_id else None


@router.post("/{subject_id}/enroll", response_model=EnrollResponse)
async def enroll(
    subject_id: int,
    data: FaceCaptureRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: BiometricService = Depends(get_biometric_service)
):
    """Enrôlement facial (un rejet est une réponse normale, pas une erreur)"""
    ensure_self_or_staff(current_user, subject_id)
    outcome = await service.enroll(
        db, subject_id, data.image_base64, operator_id=_operator_id(current_user, subject_id)
    )
    decision = outcome.decision
    return EnrollResponse(
        accepted=decision.accepted,
        reason_code=decision.reason_code.value if decision.reason_code else None,
        message=decision.message,
        quality_report=decision.quality.to_dict() if decision.quality else None,
        template_id=outcome.template_id,
        model_version=decision.model_version,
    )


@router.post("/{subject_id}/verify", response_model=VerifyResponse)
async def verify(
    subject_id: int,
    data: VerifyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: BiometricService = Depends(get_biometric_service)
):
    """Vérifier l'identité faciale d'un sujet"""
    ensure_self_or_staff(current_user, subject_id)
    outcome = await service.verify(
        db, subject_id, data.image_base64,
        strict=data.strict,
        operator_id=_operator_id(current_user, subject_id)
    )
    decision = outcome.decision
    return VerifyResponse(
        accepted=decision.accepted,
        confidence=decision.confidence,
        threshold=decision.threshold,
        reason_code=decision.reason_code.value if decision.reason_code else None,
        message=decision.message,
        quality_report=decision.quality.to_dict() if decision.quality else None,
        liveness_single_frame=decision.liveness.single_frame if decision.liveness else None,
    )


@router.get("/{subject_id}/attempts", response_model=List[VerificationAttemptResponse])
async def list_attempts(
    subject_id: int,
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """Historique (lecture seule) des tentatives d'un sujet"""
    ensure_self_or_staff(current_user, subject_id)
    return await audit.list_for_subject(db, subject_id, limit)


@router.get("/attempts", response_model=List[VerificationAttemptResponse])
async def list_attempts_by_reason(
    reason_code: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=500),
    operator: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    audit: AuditService = Depends(get_audit_service)
):
    """Tentatives rejetées pour un motif donné (opérateurs)"""
    return await audit.list_by_reason(db, reason_code, limit)


@router.get("/{subject_id}/enrollment", response_model=EnrollmentStatusResponse)
async def get_enrollment_status(
    subject_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: BiometricService = Depends(get_biometric_service)
):
    """Le sujet a-t-il un gabarit actif ?"""
    ensure_self_or_staff(current_user, subject_id)
    template = await service.enrollment_status(db, subject_id)
    return EnrollmentStatusResponse(
        subject_id=subject_id,
        is_enrolled=template is not None,
        template_id=template.id if template else None,
        model_version=template.model_version if template else None,
        captured_at=template.captured_at if template else None,
    )


@router.get("/{subject_id}/templates", response_model=List[TemplateMetadataResponse])
async def list_templates(
    subject_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: BiometricService = Depends(get_biometric_service)
):
    """Historique des gabarits (métadonnées seulement)"""
    ensure_self_or_staff(current_user, subject_id)
    return await service.template_history(db, subject_id)
