"""
Moteur de décision de vérification

Compose qualité, vivacité et similarité en une décision ACCEPT/REJECT
avec un code de motif unique. Aucune entrée/sortie, aucune mutation de gabarit:
la persistance et l'audit sont à la charge de l'appelant.

CAPTURED -> QUALITY_CHECKED -> LIVENESS_CHECKED -> MATCHED -> ACCEPTED
                 |                   |               |
                 +------------> REJECTED <-----------+
"""
from dataclasses import dataclass, field
from typing import List, Optional
import enum
import logging

import numpy as np

from app.exceptions import NoSubjectDetected, MultipleSubjectsDetected, VersionMismatch
from app.models.verification_attempt import AttemptMode
from app.services.extractor_service import FeatureExtractor
from app.services.liveness_service import LivenessChecker, LivenessResult
from app.services.matcher_service import SimilarityMatcher
from app.services.quality_service import QualityAnalyzer, QualityReport

logger = logging.getLogger(__name__)


class ReasonCode(str, enum.Enum):
    """Motifs de rejet (ensemble fermé)"""
    LOW_QUALITY = "LOW_QUALITY"
    NO_SUBJECT = "NO_SUBJECT"
    MULTIPLE_SUBJECTS = "MULTIPLE_SUBJECTS"
    LIVENESS_FAILED = "LIVENESS_FAILED"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    VERSION_MISMATCH = "VERSION_MISMATCH"
    NO_ENROLLED_TEMPLATE = "NO_ENROLLED_TEMPLATE"


class Stage(str, enum.Enum):
    CAPTURED = "CAPTURED"
    QUALITY_CHECKED = "QUALITY_CHECKED"
    LIVENESS_CHECKED = "LIVENESS_CHECKED"
    MATCHED = "MATCHED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


REASON_MESSAGES = {
    ReasonCode.LOW_QUALITY: "Qualité de capture insuffisante",
    ReasonCode.NO_SUBJECT: "Aucun visage détecté",
    ReasonCode.MULTIPLE_SUBJECTS: "Plusieurs visages détectés - un seul visage autorisé",
    ReasonCode.LIVENESS_FAILED: "Contrôle de vivacité échoué",
    ReasonCode.BELOW_THRESHOLD: "Visage non reconnu",
    ReasonCode.VERSION_MISMATCH: "Gabarit enregistré avec une autre version du modèle - réenrôlement requis",
    ReasonCode.NO_ENROLLED_TEMPLATE: "Utilisateur non enrôlé",
}


@dataclass(frozen=True)
class DecisionPolicy:
    match_threshold: float = 85.0
    strict_match_threshold: float = 90.0
    strict_mode: bool = False
    liveness_required: bool = True

    @classmethod
    def from_settings(cls, settings) -> "DecisionPolicy":
        return cls(
            match_threshold=settings.MATCH_THRESHOLD,
            strict_match_threshold=settings.STRICT_MATCH_THRESHOLD,
            strict_mode=settings.STRICT_MODE,
            liveness_required=settings.LIVENESS_REQUIRED,
        )


@dataclass
class StoredTemplate:
    """Gabarit de référence déchiffré"""
    embedding: np.ndarray
    model_version: str


@dataclass
class Decision:
    mode: AttemptMode
    accepted: bool = False
    reason_code: Optional[ReasonCode] = None
    confidence: Optional[float] = None
    threshold: Optional[float] = None
    quality: Optional[QualityReport] = None
    liveness: Optional[LivenessResult] = None
    embedding: Optional[np.ndarray] = None
    model_version: Optional[str] = None
    stages: List[Stage] = field(default_factory=lambda: [Stage.CAPTURED])

    @property
    def stage(self) -> Stage:
        return self.stages[-1]

    @property
    def message(self) -> str:
        if self.accepted:
            if self.mode == AttemptMode.ENROLL:
                return "Enrôlement biométrique réussi"
            return "Vérification réussie"
        return REASON_MESSAGES[self.reason_code]

    def advance(self, stage: Stage) -> None:
        self.stages.append(stage)

    def reject(self, reason: ReasonCode) -> "Decision":
        self.accepted = False
        self.reason_code = reason
        self.stages.append(Stage.REJECTED)
        logger.info(f"{self.mode.value} rejeté: {reason.value}")
        return self

    def accept(self) -> "Decision":
        self.accepted = True
        self.reason_code = None
        self.stages.append(Stage.ACCEPTED)
        return self


class VerificationDecisionEngine:
    """Moteur de décision (enrôlement et vérification)"""

    def __init__(
        self,
        quality_analyzer: QualityAnalyzer,
        extractor: FeatureExtractor,
        liveness_checker: LivenessChecker,
        matcher: SimilarityMatcher,
        policy: DecisionPolicy = None
    ):
        self.quality_analyzer = quality_analyzer
        self.extractor = extractor
        self.liveness_checker = liveness_checker
        self.matcher = matcher
        self.policy = policy or DecisionPolicy()

    @property
    def model_version(self) -> str:
        return self.extractor.model_version

    def match_threshold(self, strict: Optional[bool] = None) -> float:
        if strict is None:
            strict = self.policy.strict_mode
        return self.policy.strict_match_threshold if strict else self.policy.match_threshold

    def quality_floor(self, mode: AttemptMode) -> float:
        qp = self.quality_analyzer.policy
        return qp.enrollment_floor if mode == AttemptMode.ENROLL else qp.capture_floor

    def _screen_capture(self, decision: Decision, image: np.ndarray) -> bool:
        """Qualité, vivacité et extraction communes aux deux modes"""
        floor = self.quality_floor(decision.mode)
        report = self.quality_analyzer.analyze(image)
        report.issues = self.quality_analyzer.validate(report, floor)
        decision.quality = report
        decision.advance(Stage.QUALITY_CHECKED)

        if not report.subject_detected:
            decision.reject(ReasonCode.NO_SUBJECT)
            return False
        if not self.quality_analyzer.passes(report, floor):
            logger.info(f"Qualité {report.score} < {floor}: {report.issues}")
            decision.reject(ReasonCode.LOW_QUALITY)
            return False

        liveness = self.liveness_checker.check(image)
        decision.liveness = liveness
        if not liveness.is_live:
            if self.policy.liveness_required:
                decision.reject(ReasonCode.LIVENESS_FAILED)
                return False
            logger.warning(f"Vivacité non confirmée (contrôle consultatif): {liveness.message}")
        decision.advance(Stage.LIVENESS_CHECKED)

        try:
            decision.embedding = self.extractor.extract(image)
        except NoSubjectDetected:
            decision.reject(ReasonCode.NO_SUBJECT)
            return False
        except MultipleSubjectsDetected:
            decision.reject(ReasonCode.MULTIPLE_SUBJECTS)
            return False
        decision.model_version = self.extractor.model_version
        return True

    def evaluate_enrollment(self, image: np.ndarray) -> Decision:
        """Enrôlement: seuil de qualité plus strict, pas de comparaison"""
        decision = Decision(mode=AttemptMode.ENROLL)
        if not self._screen_capture(decision, image):
            return decision
        return decision.accept()

    def evaluate_verification(
        self,
        image: np.ndarray,
        reference: Optional[StoredTemplate],
        strict: Optional[bool] = None
    ) -> Decision:
        """
        Vérification contre le gabarit de référence déchiffré

        ACCEPT ssi qualité >= plancher, vivacité confirmée et confiance >= seuil
        """
        decision = Decision(mode=AttemptMode.VERIFY, threshold=self.match_threshold(strict))
        if reference is None:
            return decision.reject(ReasonCode.NO_ENROLLED_TEMPLATE)

        if not self._screen_capture(decision, image):
            return decision

        try:
            result = self.matcher.compare(
                decision.embedding,
                reference.embedding,
                candidate_version=decision.model_version,
                reference_version=reference.model_version,
            )
        except VersionMismatch as e:
            logger.warning(str(e))
            return decision.reject(ReasonCode.VERSION_MISMATCH)

        decision.confidence = result.confidence
        decision.advance(Stage.MATCHED)
        logger.info(f"Confiance: {result.confidence:.2f} (seuil: {decision.threshold})")

        if result.confidence < decision.threshold:
            return decision.reject(ReasonCode.BELOW_THRESHOLD)
        return decision.accept()
