"""
Journal d'audit des tentatives (ajout seul, lecture seule pour le reporting)
"""
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.verification_attempt import (
    VerificationAttempt, AttemptMode, AttemptOutcome, VerificationMethod
)

logger = logging.getLogger(__name__)


class AuditService:
    """Écriture et consultation des VerificationAttempt"""

    def record(
        self,
        db: AsyncSession,
        subject_id: Optional[int],
        mode: AttemptMode,
        accepted: bool,
        method: VerificationMethod,
        confidence: Optional[float] = None,
        reason_code: Optional[str] = None,
        quality_score: Optional[float] = None,
        resource_id: Optional[int] = None,
        operator_id: Optional[int] = None,
        detail: Optional[str] = None
    ) -> VerificationAttempt:
        """Ajouter une tentative à la session (validée par l'appelant)"""
        attempt = VerificationAttempt(
            subject_id=subject_id,
            mode=mode,
            outcome=AttemptOutcome.ACCEPT if accepted else AttemptOutcome.REJECT,
            method=method,
            confidence=confidence,
            reason_code=reason_code,
            quality_score=quality_score,
            resource_id=resource_id,
            operator_id=operator_id,
            detail=detail,
        )
        db.add(attempt)
        logger.info(
            f"Audit: sujet={subject_id} {mode.value} {attempt.outcome.value} "
            f"méthode={method.value} motif={reason_code}"
        )
        return attempt

    async def list_for_subject(
        self, db: AsyncSession, subject_id: int, limit: int = 50
    ) -> List[VerificationAttempt]:
        result = await db.execute(
            select(VerificationAttempt)
            .where(VerificationAttempt.subject_id == subject_id)
            .order_by(VerificationAttempt.created_at.desc(), VerificationAttempt.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_reason(
        self, db: AsyncSession, reason_code: str, limit: int = 50
    ) -> List[VerificationAttempt]:
        result = await db.execute(
            select(VerificationAttempt)
            .where(VerificationAttempt.reason_code == reason_code)
            .order_by(VerificationAttempt.created_at.desc(), VerificationAttempt.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
