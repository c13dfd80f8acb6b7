"""
Service biométrique: enrôlement et vérification faciale
Orchestration moteur de décision + chiffrement + persistance + audit
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Union
import logging

import numpy as np
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import UnknownSubject, SubjectInactive, NoSuchTemplate
from app.models.biometric import BiometricTemplate
from app.models.user import User
from app.models.verification_attempt import VerificationMethod
from app.services.audit_service import AuditService
from app.services.decision_engine import Decision, StoredTemplate, VerificationDecisionEngine
from app.services.encryption_service import EncryptedTemplate, TemplateCodec, template_aad
from app.services.image_service import decode_base64_image

logger = logging.getLogger(__name__)

FACIAL = "FACIAL"

Capture = Union[str, np.ndarray]


@dataclass
class BiometricOutcome:
    decision: Decision
    template_id: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.decision.accepted


class BiometricService:
    """Service biométrique"""

    def __init__(
        self,
        engine: VerificationDecisionEngine,
        codec: TemplateCodec,
        audit: AuditService,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.engine = engine
        self.codec = codec
        self.audit = audit
        self.clock = clock

    @staticmethod
    def _to_image(capture: Capture) -> np.ndarray:
        if isinstance(capture, str):
            return decode_base64_image(capture)
        return capture

    async def _get_subject(self, db: AsyncSession, subject_id: int) -> User:
        result = await db.execute(select(User).where(User.id == subject_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UnknownSubject(f"Sujet {subject_id} introuvable")
        if not user.is_active:
            raise SubjectInactive()
        return user

    async def get_active_template(
        self, db: AsyncSession, subject_id: int, modality: str = FACIAL
    ) -> Optional[BiometricTemplate]:
        result = await db.execute(
            select(BiometricTemplate).where(
                BiometricTemplate.owner_id == subject_id,
                BiometricTemplate.modality == modality,
                BiometricTemplate.retired_at.is_(None)
            )
        )
        return result.scalar_one_or_none()

    async def enrollment_status(self, db: AsyncSession, subject_id: int) -> Optional[BiometricTemplate]:
        """Gabarit actif du sujet (None si non enrôlé)"""
        if await db.get(User, subject_id) is None:
            raise UnknownSubject(f"Sujet {subject_id} introuvable")
        return await self.get_active_template(db, subject_id)

    async def has_enrollment(self, db: AsyncSession, subject_id: int) -> bool:
        return await self.get_active_template(db, subject_id) is not None

    async def template_history(self, db: AsyncSession, subject_id: int) -> List[BiometricTemplate]:
        """Gabarits actifs et retirés, du plus récent au plus ancien"""
        result = await db.execute(
            select(BiometricTemplate)
            .where(BiometricTemplate.owner_id == subject_id)
            .order_by(BiometricTemplate.captured_at.desc(), BiometricTemplate.id.desc())
        )
        return list(result.scalars().all())

    def decrypt_template(self, template: BiometricTemplate) -> StoredTemplate:
        """
        Raises:
            NoSuchTemplate: gabarit absent
            DecryptionError: clé incorrecte ou gabarit corrompu
        """
        if template is None:
            raise NoSuchTemplate()
        embedding = self.codec.decode(
            EncryptedTemplate(
                ciphertext=template.encrypted_blob,
                nonce=template.nonce,
                scheme=template.encryption_scheme,
            ),
            associated_data=template_aad(template.owner_id, template.model_version),
            dimension=template.embedding_dimension,
        )
        return StoredTemplate(embedding=embedding, model_version=template.model_version)

    async def enroll(
        self,
        db: AsyncSession,
        subject_id: int,
        capture: Capture,
        operator_id: Optional[int] = None
    ) -> BiometricOutcome:
        """
        Enrôler le visage d'un sujet
        En cas d'acceptation: retrait du gabarit actif puis ajout du nouveau (chiffré)
        """
        user = await self._get_subject(db, subject_id)
        image = self._to_image(capture)
        decision = self.engine.evaluate_enrollment(image)
        outcome = BiometricOutcome(decision=decision)

        if decision.accepted:
            now = self.clock()
            encrypted = self.codec.encode(
                decision.embedding,
                associated_data=template_aad(subject_id, decision.model_version),
            )

            # Retirer l'ancien gabarit avant d'ajouter le nouveau (historique conservé)
            await db.execute(
                update(BiometricTemplate)
                .where(
                    BiometricTemplate.owner_id == subject_id,
                    BiometricTemplate.modality == FACIAL,
                    BiometricTemplate.retired_at.is_(None)
                )
                .values(retired_at=now)
            )
            template = BiometricTemplate(
                owner_id=subject_id,
                modality=FACIAL,
                encrypted_blob=encrypted.ciphertext,
                nonce=encrypted.nonce,
                encryption_scheme=encrypted.scheme,
                model_version=decision.model_version,
                embedding_dimension=int(decision.embedding.size),
                quality_score_at_capture=decision.quality.score,
                captured_at=now,
            )
            db.add(template)
            user.is_enrolled = True
            await db.flush()
            outcome.template_id = template.id
            logger.info(f"Gabarit {template.id} enregistré pour le sujet {subject_id} (AES-256-GCM)")

        self.audit.record(
            db,
            subject_id=subject_id,
            mode=decision.mode,
            accepted=decision.accepted,
            method=VerificationMethod.FACIAL,
            reason_code=decision.reason_code.value if decision.reason_code else None,
            quality_score=decision.quality.score if decision.quality else None,
            operator_id=operator_id,
            detail="; ".join(decision.quality.issues) if decision.quality else None,
        )
        await db.commit()
        return outcome

    async def verify(
        self,
        db: AsyncSession,
        subject_id: int,
        capture: Capture,
        strict: Optional[bool] = None,
        operator_id: Optional[int] = None
    ) -> BiometricOutcome:
        """Vérifier l'identité d'un sujet contre son gabarit actif"""
        await self._get_subject(db, subject_id)
        image = self._to_image(capture)

        template = await self.get_active_template(db, subject_id)
        reference = self.decrypt_template(template) if template is not None else None

        decision = self.engine.evaluate_verification(image, reference, strict=strict)
        logger.info(
            f"Vérification sujet={subject_id}: "
            f"{'ACCEPTÉ' if decision.accepted else 'REFUSÉ'} confiance={decision.confidence}"
        )

        self.audit.record(
            db,
            subject_id=subject_id,
            mode=decision.mode,
            accepted=decision.accepted,
            method=VerificationMethod.FACIAL,
            confidence=decision.confidence,
            reason_code=decision.reason_code.value if decision.reason_code else None,
            quality_score=decision.quality.score if decision.quality else None,
            operator_id=operator_id,
        )
        await db.commit()
        return BiometricOutcome(decision=decision, template_id=template.id if template else None)
