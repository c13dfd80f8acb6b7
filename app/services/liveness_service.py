"""
Contrôle de vivacité sur image unique

Une seule image ne permet pas de détecter un clignement ni la profondeur.
Le contrôle mono-image se limite à une analyse de texture (une photo
imprimée ou un écran refilmé perd du détail fin) et de reflets
(écrans, papier glacé). Le résultat le signale via `single_frame=True`.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
import logging

import numpy as np

from app.services.image_service import (
    ensure_image, to_gray, laplacian_variance, subject_regions, center_region
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LivenessResult:
    is_live: bool
    confidence: float
    message: str
    single_frame: bool = True


class LivenessChecker(ABC):
    """Interface de contrôle de vivacité"""

    @abstractmethod
    def check(self, image: np.ndarray) -> LivenessResult:
        ...


class SingleFrameLivenessChecker(LivenessChecker):
    """Heuristique texture + reflets sur la zone du visage"""

    def __init__(
        self,
        min_texture: float = 50.0,
        max_glare_ratio: float = 0.2,
        min_subject_area_ratio: float = 0.02
    ):
        self.min_texture = min_texture
        self.max_glare_ratio = max_glare_ratio
        self.min_subject_area_ratio = min_subject_area_ratio

    def _subject_patch(self, image: np.ndarray) -> np.ndarray:
        boxes = subject_regions(image, self.min_subject_area_ratio)
        if len(boxes) != 1:
            return center_region(image, 0.4)
        x, y, w, h = boxes[0]
        return image[y:y + h, x:x + w]

    def check(self, image: np.ndarray) -> LivenessResult:
        image = ensure_image(image)
        patch = self._subject_patch(image)
        gray = to_gray(patch)

        texture = laplacian_variance(gray)
        glare_ratio = float((gray >= 250).mean()) if gray.size else 1.0

        if texture < self.min_texture:
            logger.warning(f"Vivacité: texture insuffisante ({texture:.1f} < {self.min_texture})")
            return LivenessResult(
                is_live=False,
                confidence=round(min(texture / self.min_texture, 1.0) * 50, 1),
                message="Texture insuffisante - possible photo ou écran"
            )

        if glare_ratio > self.max_glare_ratio:
            logger.warning(f"Vivacité: reflets excessifs ({glare_ratio:.2f})")
            return LivenessResult(
                is_live=False,
                confidence=round((1 - glare_ratio) * 50, 1),
                message="Reflets excessifs - possible écran ou papier glacé"
            )

        # min_texture = 0 désactive le contrôle de texture
        texture_score = min(texture / (self.min_texture * 4), 1.0) if self.min_texture > 0 else 1.0
        confidence = 50 + 50 * texture_score * (1 - glare_ratio)
        return LivenessResult(
            is_live=True,
            confidence=round(confidence, 1),
            message="Contrôle de vivacité réussi (image unique)"
        )
