"""
Service des jetons d'identité à durée de vie courte (QR code)

- Émission: code aléatoire (secrets), expiration = émission + TTL
- Consommation: UPDATE conditionnel unique (non expiré, non épuisé, non remplacé)
  puis diagnostic précis en cas d'échec
- L'expiration est toujours vérifiée côté serveur; la rotation d'affichage
  côté client n'est qu'un confort
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from urllib.parse import unquote, urlparse
import enum
import logging
import secrets

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    BioVaultError, InvalidInput, TokenExhausted, TokenExpired, TokenNotFound,
    UnknownSubject, SubjectInactive, ResourceNotFound
)
from app.models.identity_token import IdentityToken
from app.models.occupancy import OccupancyRecord
from app.models.user import User
from app.models.verification_attempt import AttemptMode, VerificationMethod
from app.services.audit_service import AuditService
from app.services.occupancy_service import AttendanceStateMachine

logger = logging.getLogger(__name__)

CODE_BYTES = 32


class TokenIntent(str, enum.Enum):
    ENTER = "ENTER"
    EXIT = "EXIT"
    VERIFY = "VERIFY"


@dataclass(frozen=True)
class IssuedToken:
    code_value: str
    subject_id: int
    issued_at: datetime
    expires_at: datetime
    max_consumptions: int
    rotation_seconds: int


@dataclass
class RedeemResult:
    subject_id: int
    intent: TokenIntent
    consumption_count: int
    max_consumptions: int
    record: Optional[OccupancyRecord] = None


def mask_code(code: str) -> str:
    """Ne jamais journaliser un code complet"""
    return f"{code[:6]}..." if code else "<vide>"


class IdentityTokenService:
    """Émission, consommation et nettoyage des jetons"""

    def __init__(
        self,
        state_machine: AttendanceStateMachine,
        audit: AuditService,
        ttl_seconds: int = 300,
        rotation_seconds: int = 30,
        default_max_consumptions: int = 1,
        grace_seconds: int = 86400,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.state_machine = state_machine
        self.audit = audit
        self.ttl = timedelta(seconds=ttl_seconds)
        self.rotation_seconds = rotation_seconds
        self.default_max_consumptions = default_max_consumptions
        self.grace = timedelta(seconds=grace_seconds)
        self.clock = clock

    @staticmethod
    def normalize_code(raw: str) -> str:
        """Accepter un code brut ou une URL scannée (dernier segment du chemin)"""
        if not raw or not raw.strip():
            raise InvalidInput("Code QR requis")
        code = raw.strip()
        if "/" in code:
            path = urlparse(code).path if "://" in code else code
            segment = path.rstrip("/").rsplit("/", 1)[-1]
            code = unquote(segment) or code
        return code

    async def issue(
        self,
        db: AsyncSession,
        subject_id: int,
        max_consumptions: Optional[int] = None
    ) -> IssuedToken:
        """
        Émettre un nouveau jeton et remplacer les jetons encore valides du sujet
        """
        max_consumptions = max_consumptions or self.default_max_consumptions
        if max_consumptions not in (1, 2):
            raise InvalidInput("max_consumptions doit valoir 1 (entrée) ou 2 (entrée + sortie)")

        result = await db.execute(select(User.is_active).where(User.id == subject_id))
        is_active = result.scalar_one_or_none()
        if is_active is None:
            raise UnknownSubject(f"Sujet {subject_id} introuvable")
        if not is_active:
            raise SubjectInactive()

        now = self.clock()
        await db.execute(
            update(IdentityToken)
            .where(
                IdentityToken.subject_id == subject_id,
                IdentityToken.revoked_at.is_(None),
                IdentityToken.expires_at > now
            )
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )

        token = IdentityToken(
            subject_id=subject_id,
            code_value=secrets.token_urlsafe(CODE_BYTES),
            issued_at=now,
            expires_at=now + self.ttl,
            consumption_count=0,
            max_consumptions=max_consumptions,
        )
        db.add(token)
        await db.commit()
        logger.info(f"Jeton {mask_code(token.code_value)} émis pour le sujet {subject_id}")

        return IssuedToken(
            code_value=token.code_value,
            subject_id=subject_id,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            max_consumptions=max_consumptions,
            rotation_seconds=self.rotation_seconds,
        )

    async def apply_consume(self, db: AsyncSession, code: str) -> IdentityToken:
        """Consommation atomique dans la transaction courante (sans commit)"""
        now = self.clock()
        result = await db.execute(
            update(IdentityToken)
            .where(
                IdentityToken.code_value == code,
                IdentityToken.revoked_at.is_(None),
                IdentityToken.expires_at > now,
                IdentityToken.consumption_count < IdentityToken.max_consumptions
            )
            .values(
                consumption_count=IdentityToken.consumption_count + 1,
                consumed_at=func.coalesce(IdentityToken.consumed_at, now)
            )
            .execution_options(synchronize_session=False)
        )

        lookup = await db.execute(
            select(IdentityToken)
            .where(IdentityToken.code_value == code)
            .execution_options(populate_existing=True)
        )
        token = lookup.scalar_one_or_none()
        if result.rowcount == 1:
            return token

        # Diagnostic: l'expiration prime sur l'épuisement
        if token is None or token.revoked_at is not None:
            raise TokenNotFound()
        if token.expires_at <= now:
            raise TokenExpired()
        raise TokenExhausted()

    async def consume(self, db: AsyncSession, code: str) -> IdentityToken:
        """Consommer un jeton une fois"""
        code = self.normalize_code(code)
        try:
            token = await self.apply_consume(db, code)
            await db.commit()
        except BioVaultError as e:
            await db.rollback()
            logger.info(f"Jeton {mask_code(code)} refusé: {e.kind}")
            raise
        return token

    async def redeem(
        self,
        db: AsyncSession,
        code: str,
        intent: TokenIntent,
        resource_id: Optional[int] = None,
        operator_id: Optional[int] = None
    ) -> RedeemResult:
        """
        Utiliser un jeton pour vérifier l'identité ou enregistrer une entrée/sortie
        Le jeton n'est consommé que si la transition réussit (même transaction).
        """
        code = self.normalize_code(code)
        if intent in (TokenIntent.ENTER, TokenIntent.EXIT) and resource_id is None:
            raise InvalidInput("resource_id requis pour une entrée ou une sortie")

        subject_id = None
        try:
            token = await self.apply_consume(db, code)
            subject_id = token.subject_id

            subject = await db.get(User, subject_id)
            if subject is None or not subject.is_active:
                raise SubjectInactive()

            record = None
            if intent == TokenIntent.ENTER:
                record = await self.state_machine.apply_enter(
                    db, subject_id, resource_id, VerificationMethod.TOKEN, operator_id
                )
            elif intent == TokenIntent.EXIT:
                record = await self.state_machine.apply_exit(db, subject_id, resource_id)

            self.audit.record(
                db,
                subject_id=subject_id,
                mode=AttemptMode.VERIFY,
                accepted=True,
                method=VerificationMethod.TOKEN,
                resource_id=resource_id,
                operator_id=operator_id,
                detail=intent.value,
            )
            await db.commit()
        except BioVaultError as e:
            await db.rollback()
            logger.info(f"Jeton {mask_code(code)} refusé ({intent.value}): {e.kind}")
            self.audit.record(
                db,
                subject_id=subject_id,
                mode=AttemptMode.VERIFY,
                accepted=False,
                method=VerificationMethod.TOKEN,
                reason_code=e.kind,
                resource_id=None if isinstance(e, ResourceNotFound) else resource_id,
                operator_id=operator_id,
                detail=intent.value,
            )
            await db.commit()
            raise

        return RedeemResult(
            subject_id=subject_id,
            intent=intent,
            consumption_count=token.consumption_count,
            max_consumptions=token.max_consumptions,
            record=record,
        )

    async def sweep_expired(self, db: AsyncSession) -> int:
        """Supprimer les jetons expirés depuis plus que la période de grâce"""
        cutoff = self.clock() - self.grace
        result = await db.execute(
            delete(IdentityToken)
            .where(IdentityToken.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        if result.rowcount:
            logger.info(f"{result.rowcount} jeton(s) expiré(s) supprimé(s)")
        return result.rowcount
