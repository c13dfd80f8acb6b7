"""
Comparaison de vecteurs biométriques

Convention: les vecteurs sont normalisés L2 à l'extraction.
similarité = clamp(cosinus, 0, 1), confiance = similarité * 100
"""
from dataclasses import dataclass
from typing import Optional
import logging

import numpy as np

from app.exceptions import InvalidInput, DegenerateEmbedding, VersionMismatch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    similarity: float
    confidence: float


class SimilarityMatcher:
    """Similarité cosinus entre vecteurs de même longueur et même version"""

    def __init__(self, dimension: Optional[int] = None, norm_tolerance: float = 1e-3):
        self.dimension = dimension
        self.norm_tolerance = norm_tolerance

    def _check(self, vector: np.ndarray) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float64)
        if vector.ndim != 1:
            raise InvalidInput(f"Vecteur de forme invalide: {vector.shape}")
        if self.dimension is not None and vector.size != self.dimension:
            raise InvalidInput(f"Dimension {vector.size} au lieu de {self.dimension}")
        if not np.all(np.isfinite(vector)):
            raise InvalidInput("Vecteur contenant des valeurs non finies")

        norm = float(np.linalg.norm(vector))
        if norm == 0.0:
            raise DegenerateEmbedding()
        if abs(norm - 1.0) > self.norm_tolerance:
            raise InvalidInput(f"Vecteur non normalisé (norme {norm:.4f})")
        return vector

    def similarity(self, a, b) -> float:
        """Similarité cosinus ramenée dans [0, 1]"""
        a = self._check(a)
        b = self._check(b)
        if a.size != b.size:
            raise InvalidInput(f"Vecteurs de longueurs différentes ({a.size} != {b.size})")

        cosine = float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b)))
        return min(1.0, max(0.0, round(cosine, 12)))

    def compare(
        self,
        candidate,
        reference,
        candidate_version: Optional[str] = None,
        reference_version: Optional[str] = None
    ) -> MatchResult:
        """
        Comparer deux vecteurs

        Raises:
            VersionMismatch: vecteurs issus de modèles différents
        """
        if candidate_version is not None and reference_version is not None and candidate_version != reference_version:
            raise VersionMismatch(
                f"Gabarit {reference_version} incompatible avec l'extracteur {candidate_version}"
            )
        similarity = self.similarity(candidate, reference)
        return MatchResult(similarity=similarity, confidence=round(similarity * 100, 2))
