"""
Machine à états de présence / accès

Par (sujet, ressource): NONE -> OPEN (entrée sans sortie) -> CLOSED (sortie)
- ENTER valide depuis NONE ou CLOSED (une nouvelle entrée ouvre un nouvel enregistrement)
- ENTER depuis OPEN est rejeté (AlreadyCheckedIn) pour signaler les doubles scans
- EXIT valide uniquement depuis OPEN

Le contrôle de capacité et la création de l'enregistrement se font dans la même
transaction, derrière un UPDATE conditionnel sur le compteur d'occupation.
"""
from datetime import datetime
from typing import Callable, List, Optional
import enum
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    BioVaultError, AlreadyCheckedIn, NotCheckedIn, CapacityExceeded,
    ResourceNotFound, ResourceInactive, UnknownSubject, SubjectInactive
)
from app.models.occupancy import Resource, OccupancyRecord
from app.models.user import User
from app.models.verification_attempt import VerificationMethod

logger = logging.getLogger(__name__)


class OccupancyState(str, enum.Enum):
    NONE = "NONE"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class AttendanceStateMachine:
    """Entrées/sorties sur séances de cours et services"""

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self.clock = clock

    async def get_resource(self, db: AsyncSession, resource_id: int) -> Resource:
        result = await db.execute(
            select(Resource)
            .where(Resource.id == resource_id)
            .execution_options(populate_existing=True)
        )
        resource = result.scalar_one_or_none()
        if resource is None:
            raise ResourceNotFound(f"Ressource {resource_id} introuvable")
        return resource

    async def _open_record(
        self, db: AsyncSession, subject_id: int, resource_id: int
    ) -> Optional[OccupancyRecord]:
        result = await db.execute(
            select(OccupancyRecord).where(
                OccupancyRecord.subject_id == subject_id,
                OccupancyRecord.resource_id == resource_id,
                OccupancyRecord.exit_time.is_(None)
            )
        )
        return result.scalar_one_or_none()

    async def _check_subject(self, db: AsyncSession, subject_id: int) -> None:
        result = await db.execute(select(User.is_active).where(User.id == subject_id))
        is_active = result.scalar_one_or_none()
        if is_active is None:
            raise UnknownSubject(f"Sujet {subject_id} introuvable")
        if not is_active:
            raise SubjectInactive()

    async def apply_enter(
        self,
        db: AsyncSession,
        subject_id: int,
        resource_id: int,
        method: VerificationMethod,
        operator_id: Optional[int] = None,
        match_score: Optional[float] = None
    ) -> OccupancyRecord:
        """Transition ENTER dans la transaction courante (sans commit)"""
        # Réservation d'une place: atomique, verrouille la ligne de la ressource
        result = await db.execute(
            update(Resource)
            .where(
                Resource.id == resource_id,
                Resource.is_active.is_(True),
                (Resource.max_capacity.is_(None)) | (Resource.current_occupancy < Resource.max_capacity)
            )
            .values(current_occupancy=Resource.current_occupancy + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            resource = await self.get_resource(db, resource_id)
            if not resource.is_active:
                raise ResourceInactive()
            if await self._open_record(db, subject_id, resource_id) is not None:
                raise AlreadyCheckedIn()
            raise CapacityExceeded(
                f"Capacité maximale atteinte ({resource.current_occupancy}/{resource.max_capacity})"
            )

        await self._check_subject(db, subject_id)
        if await self._open_record(db, subject_id, resource_id) is not None:
            raise AlreadyCheckedIn()

        record = OccupancyRecord(
            subject_id=subject_id,
            resource_id=resource_id,
            entry_time=self.clock(),
            method=method,
            match_score=match_score,
            operator_id=operator_id,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError:
            raise AlreadyCheckedIn()
        return record

    async def apply_exit(
        self, db: AsyncSession, subject_id: int, resource_id: int
    ) -> OccupancyRecord:
        """Transition EXIT dans la transaction courante (sans commit)"""
        now = self.clock()
        result = await db.execute(
            update(OccupancyRecord)
            .where(
                OccupancyRecord.subject_id == subject_id,
                OccupancyRecord.resource_id == resource_id,
                OccupancyRecord.exit_time.is_(None)
            )
            .values(exit_time=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.get_resource(db, resource_id)
            raise NotCheckedIn()

        await db.execute(
            update(Resource)
            .where(Resource.id == resource_id, Resource.current_occupancy > 0)
            .values(current_occupancy=Resource.current_occupancy - 1)
            .execution_options(synchronize_session=False)
        )

        closed = await db.execute(
            select(OccupancyRecord)
            .where(
                OccupancyRecord.subject_id == subject_id,
                OccupancyRecord.resource_id == resource_id,
                OccupancyRecord.exit_time == now
            )
            .order_by(OccupancyRecord.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return closed.scalar_one()

    async def enter(
        self,
        db: AsyncSession,
        subject_id: int,
        resource_id: int,
        method: VerificationMethod = VerificationMethod.MANUAL,
        operator_id: Optional[int] = None,
        match_score: Optional[float] = None
    ) -> OccupancyRecord:
        """Enregistrer une entrée"""
        try:
            record = await self.apply_enter(
                db, subject_id, resource_id, method, operator_id, match_score
            )
            await db.commit()
        except BioVaultError as e:
            await db.rollback()
            logger.info(f"Entrée refusée sujet={subject_id} ressource={resource_id}: {e.kind}")
            raise
        logger.info(f"Entrée sujet={subject_id} ressource={resource_id} ({method.value})")
        return record

    async def exit(self, db: AsyncSession, subject_id: int, resource_id: int) -> OccupancyRecord:
        """Enregistrer une sortie"""
        try:
            record = await self.apply_exit(db, subject_id, resource_id)
            await db.commit()
        except BioVaultError as e:
            await db.rollback()
            logger.info(f"Sortie refusée sujet={subject_id} ressource={resource_id}: {e.kind}")
            raise
        logger.info(f"Sortie sujet={subject_id} ressource={resource_id}")
        return record

    async def state(self, db: AsyncSession, subject_id: int, resource_id: int) -> OccupancyState:
        result = await db.execute(
            select(OccupancyRecord.exit_time)
            .where(
                OccupancyRecord.subject_id == subject_id,
                OccupancyRecord.resource_id == resource_id
            )
            .order_by(OccupancyRecord.entry_time.desc(), OccupancyRecord.id.desc())
            .limit(1)
        )
        row = result.first()
        if row is None:
            return OccupancyState.NONE
        return OccupancyState.OPEN if row.exit_time is None else OccupancyState.CLOSED

    async def open_records(self, db: AsyncSession, resource_id: int) -> List[OccupancyRecord]:
        await self.get_resource(db, resource_id)
        result = await db.execute(
            select(OccupancyRecord)
            .where(
                OccupancyRecord.resource_id == resource_id,
                OccupancyRecord.exit_time.is_(None)
            )
            .order_by(OccupancyRecord.entry_time)
        )
        return list(result.scalars().all())
