"""
Analyse de la qualité d'une capture biométrique
Luminosité, netteté et présence/centrage du sujet avant toute extraction
"""
from dataclasses import dataclass, asdict, field
from typing import List, Tuple
import logging

import numpy as np

from app.services.image_service import (
    ensure_image, to_gray, laplacian_variance, center_region, skin_tone_mask
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityPolicy:
    """Seuils de qualité (réglables via la configuration)"""
    min_width: int = 640
    min_height: int = 480
    brightness_optimal_min: float = 100.0
    brightness_optimal_max: float = 180.0
    brightness_falloff: float = 100.0
    brightness_too_dark: float = 60.0
    brightness_too_bright: float = 220.0
    min_sharpness: float = 30.0
    sharpness_reference: float = 100.0
    subject_tone_ratio: float = 0.15
    weight_brightness: float = 0.3
    weight_sharpness: float = 0.4
    weight_subject: float = 0.3
    capture_floor: float = 50.0
    enrollment_floor: float = 70.0

    @classmethod
    def from_settings(cls, settings) -> "QualityPolicy":
        return cls(
            min_width=settings.MIN_IMAGE_WIDTH,
            min_height=settings.MIN_IMAGE_HEIGHT,
            brightness_optimal_min=settings.BRIGHTNESS_OPTIMAL_MIN,
            brightness_optimal_max=settings.BRIGHTNESS_OPTIMAL_MAX,
            brightness_too_dark=settings.BRIGHTNESS_TOO_DARK,
            brightness_too_bright=settings.BRIGHTNESS_TOO_BRIGHT,
            min_sharpness=settings.MIN_SHARPNESS,
            sharpness_reference=settings.SHARPNESS_REFERENCE,
            subject_tone_ratio=settings.SUBJECT_TONE_RATIO,
            weight_brightness=settings.QUALITY_WEIGHT_BRIGHTNESS,
            weight_sharpness=settings.QUALITY_WEIGHT_SHARPNESS,
            weight_subject=settings.QUALITY_WEIGHT_SUBJECT,
            capture_floor=settings.CAPTURE_QUALITY_FLOOR,
            enrollment_floor=settings.ENROLLMENT_QUALITY_FLOOR,
        )


@dataclass
class QualityReport:
    """Rapport de qualité (transitoire, seulement journalisé)"""
    score: int
    brightness: int
    sharpness: int
    subject_detected: bool
    subject_centered: bool
    resolution: Tuple[int, int]
    issues: List[str] = field(default_factory=list)

    @property
    def width(self) -> int:
        return self.resolution[0]

    @property
    def height(self) -> int:
        return self.resolution[1]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["resolution"] = {"width": self.width, "height": self.height}
        return data


class QualityAnalyzer:
    """Analyseur de qualité d'image"""

    def __init__(self, policy: QualityPolicy = None):
        self.policy = policy or QualityPolicy()

    def normalize_brightness(self, brightness: float) -> float:
        """Score de luminosité: 1 dans la plage optimale, décroissance linéaire hors plage"""
        p = self.policy
        if p.brightness_optimal_min <= brightness <= p.brightness_optimal_max:
            return 1.0
        if brightness < p.brightness_optimal_min:
            if p.brightness_optimal_min <= 0:
                return 0.0
            return max(0.0, brightness / p.brightness_optimal_min)
        if p.brightness_falloff <= 0:
            return 0.0
        return max(0.0, 1 - (brightness - p.brightness_optimal_max) / p.brightness_falloff)

    def _subject_centered(self, image: np.ndarray) -> bool:
        """Le barycentre des pixels de teinte peau est dans les 60% centraux"""
        mask = skin_tone_mask(image)
        ys, xs = np.nonzero(mask)
        if xs.size == 0:
            return False
        height, width = mask.shape
        cx, cy = xs.mean() / width, ys.mean() / height
        return 0.2 <= cx <= 0.8 and 0.2 <= cy <= 0.8

    def analyze(self, image: np.ndarray) -> QualityReport:
        """
        Analyser la qualité d'une capture

        Args:
            image: Image RGB décodée (H x W x 3, uint8)
        Returns:
            QualityReport avec la liste des problèmes détectés
        Raises:
            InvalidInput: image mal formée ou de taille nulle
        """
        image = ensure_image(image)
        p = self.policy
        height, width = image.shape[:2]

        brightness = float(image.astype(np.float64).mean(axis=2).mean())
        sharpness = laplacian_variance(to_gray(image))

        center = center_region(image, 0.4)
        subject_detected = float(skin_tone_mask(center).mean()) > p.subject_tone_ratio
        subject_centered = subject_detected and self._subject_centered(image)

        brightness_score = self.normalize_brightness(brightness)
        # Référence nulle: la netteté ne pénalise pas le score
        sharpness_score = min(sharpness / p.sharpness_reference, 1.0) if p.sharpness_reference > 0 else 1.0
        score = (
            brightness_score * p.weight_brightness
            + sharpness_score * p.weight_sharpness
            + (p.weight_subject if subject_detected else 0.0)
        ) * 100

        report = QualityReport(
            score=int(round(score)),
            brightness=int(round(brightness)),
            sharpness=int(round(sharpness)),
            subject_detected=subject_detected,
            subject_centered=subject_centered,
            resolution=(width, height),
        )
        report.issues = self.validate(report, p.capture_floor)
        logger.debug(
            f"Qualité: score={report.score} luminosité={report.brightness} "
            f"netteté={report.sharpness} sujet={subject_detected}"
        )
        return report

    def validate(self, report: QualityReport, min_score: float = None) -> List[str]:
        """
        Vérifier qu'un rapport respecte les standards minimaux
        Returns:
            Liste de problèmes lisibles (vide si la capture est exploitable)
        """
        p = self.policy
        min_score = p.capture_floor if min_score is None else min_score
        issues = []

        if not report.subject_detected:
            issues.append("Aucun visage détecté dans l'image")
        elif not report.subject_centered:
            issues.append("Visage décentré - placez-vous au centre du cadre")

        if report.brightness < p.brightness_too_dark:
            issues.append("Image trop sombre - améliorez l'éclairage")
        elif report.brightness > p.brightness_too_bright:
            issues.append("Image trop lumineuse - réduisez l'éclairage ou l'exposition")

        if report.sharpness < p.min_sharpness:
            issues.append("Image floue - tenez la caméra immobile")

        if report.width < p.min_width or report.height < p.min_height:
            issues.append(
                f"Résolution trop faible - minimum {p.min_width}x{p.min_height} requis"
            )

        if report.score < min_score:
            issues.append("Qualité globale insuffisante - veuillez reprendre la photo")

        return issues

    def passes(self, report: QualityReport, floor: float) -> bool:
        """
        Sujet présent, score >= plancher, luminosité dans les limites,
        netteté et résolution minimales. Le centrage reste indicatif.
        """
        p = self.policy
        return (
            report.subject_detected
            and report.score >= floor
            and p.brightness_too_dark <= report.brightness <= p.brightness_too_bright
            and report.sharpness >= p.min_sharpness
            and report.width >= p.min_width
            and report.height >= p.min_height
        )
