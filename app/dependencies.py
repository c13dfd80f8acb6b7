"""
Construction explicite des composants du noyau et fournisseurs FastAPI
"""
from dataclasses import dataclass
import logging

from fastapi import Request

from app.services.audit_service import AuditService
from app.services.biometric_service import BiometricService
from app.services.decision_engine import DecisionPolicy, VerificationDecisionEngine
from app.services.encryption_service import TemplateCodec
from app.services.extractor_service import build_extractor
from app.services.liveness_service import SingleFrameLivenessChecker
from app.services.matcher_service import SimilarityMatcher
from app.services.occupancy_service import AttendanceStateMachine
from app.services.quality_service import QualityAnalyzer, QualityPolicy
from app.services.token_service import IdentityTokenService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Composants partagés par les routes (sans état mutable)"""
    engine: VerificationDecisionEngine
    biometric: BiometricService
    tokens: IdentityTokenService
    attendance: AttendanceStateMachine
    audit: AuditService


def build_services(settings) -> Services:
    """Assembler les composants à partir de la configuration"""
    extractor = build_extractor(settings)
    engine = VerificationDecisionEngine(
        quality_analyzer=QualityAnalyzer(QualityPolicy.from_settings(settings)),
        extractor=extractor,
        liveness_checker=SingleFrameLivenessChecker(
            min_texture=settings.LIVENESS_MIN_TEXTURE,
            max_glare_ratio=settings.LIVENESS_MAX_GLARE_RATIO,
            min_subject_area_ratio=settings.MIN_SUBJECT_AREA_RATIO,
        ),
        matcher=SimilarityMatcher(dimension=extractor.dimension),
        policy=DecisionPolicy.from_settings(settings),
    )
    if not settings.LIVENESS_REQUIRED:
        logger.warning("LIVENESS_REQUIRED=False: la vivacité n'est que consultative")

    audit = AuditService()
    attendance = AttendanceStateMachine()
    return Services(
        engine=engine,
        biometric=BiometricService(engine, TemplateCodec(settings.BIOMETRIC_ENCRYPTION_KEY), audit),
        tokens=IdentityTokenService(
            attendance,
            audit,
            ttl_seconds=settings.TOKEN_TTL_SECONDS,
            rotation_seconds=settings.TOKEN_ROTATION_SECONDS,
            default_max_consumptions=settings.TOKEN_DEFAULT_MAX_CONSUMPTIONS,
            grace_seconds=settings.TOKEN_AUDIT_GRACE_SECONDS,
        ),
        attendance=attendance,
        audit=audit,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_biometric_service(request: Request) -> BiometricService:
    return get_services(request).biometric


def get_token_service(request: Request) -> IdentityTokenService:
    return get_services(request).tokens


def get_attendance_service(request: Request) -> AttendanceStateMachine:
    return get_services(request).attendance


def get_audit_service(request: Request) -> AuditService:
    return get_services(request).audit
