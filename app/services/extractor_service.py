"""
Extraction de vecteurs de caractéristiques faciales

Deux extracteurs interchangeables derrière la même interface:
- GridPoolingExtractor: sans modèle appris, déterministe (tests, environnements sans dlib)
- FaceRecognitionExtractor: descripteur 128D de la bibliothèque face_recognition (dlib)

Tous deux produisent des vecteurs normalisés L2.
"""
from abc import ABC, abstractmethod
from typing import Tuple
import importlib
import logging
import threading

import cv2
import numpy as np

from app.exceptions import NoSubjectDetected, MultipleSubjectsDetected, InvalidInput
from app.services.image_service import ensure_image, to_gray, subject_regions

logger = logging.getLogger(__name__)


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector
    return vector / norm


class FeatureExtractor(ABC):
    """Interface d'extraction: fonction pure de l'image"""

    model_version: str
    dimension: int

    @abstractmethod
    def extract(self, image: np.ndarray) -> np.ndarray:
        """
        Extraire le vecteur d'un sujet unique

        Raises:
            NoSubjectDetected: aucun visage
            MultipleSubjectsDetected: plus d'un visage
        """


class GridPoolingExtractor(FeatureExtractor):
    """
    Extracteur sans modèle: boîte du sujet réduite en grille 8x16 de niveaux
    de gris (moyenne par zone), centrée puis normalisée
    """

    model_version = "grid-pool-v1"
    grid: Tuple[int, int] = (8, 16)  # (lignes, colonnes)

    def __init__(self, min_subject_area_ratio: float = 0.02):
        self.min_subject_area_ratio = min_subject_area_ratio
        self.dimension = self.grid[0] * self.grid[1]

    def _locate_subject(self, image: np.ndarray) -> Tuple[int, int, int, int]:
        boxes = subject_regions(image, self.min_subject_area_ratio)
        if len(boxes) == 0:
            raise NoSubjectDetected()
        if len(boxes) > 1:
            raise MultipleSubjectsDetected(f"Plusieurs visages détectés ({len(boxes)})")
        return boxes[0]

    def extract(self, image: np.ndarray) -> np.ndarray:
        image = ensure_image(image)
        x, y, w, h = self._locate_subject(image)
        crop = to_gray(image[y:y + h, x:x + w])

        rows, cols = self.grid
        pooled = cv2.resize(crop, (cols, rows), interpolation=cv2.INTER_AREA)
        features = pooled.astype(np.float64).ravel()
        features -= features.mean()

        if not np.any(features):
            # Sujet parfaitement uniforme: rien à comparer
            raise NoSubjectDetected("Aucun détail exploitable dans la zone du visage")
        return l2_normalize(features)


class FaceRecognitionExtractor(FeatureExtractor):
    """Descripteur facial 128D de face_recognition (modèle ResNet de dlib)"""

    model_version = "dlib-resnet-v1"
    dimension = 128

    _module = None
    _load_lock = threading.Lock()

    def __init__(self, max_width: int = 480, detection_model: str = "hog"):
        self.max_width = max_width
        self.detection_model = detection_model

    @classmethod
    def _library(cls):
        """Chargement paresseux et unique des modèles dlib"""
        if cls._module is None:
            with cls._load_lock:
                if cls._module is None:
                    logger.info("Chargement des modèles face_recognition...")
                    cls._module = importlib.import_module("face_recognition")
                    logger.info("Modèles face_recognition chargés")
        return cls._module

    def _resize_image_for_speed(self, image: np.ndarray) -> np.ndarray:
        """Redimensionner l'image pour accélérer le traitement"""
        height, width = image.shape[:2]
        if width > self.max_width:
            scale = self.max_width / width
            return cv2.resize(image, (self.max_width, int(height * scale)))
        return image

    def extract(self, image: np.ndarray) -> np.ndarray:
        image = ensure_image(image)
        face_recognition = self._library()

        small_image = np.ascontiguousarray(self._resize_image_for_speed(image))

        # Détecter les visages avec le modèle HOG (plus rapide que CNN)
        face_locations = face_recognition.face_locations(small_image, model=self.detection_model)
        if len(face_locations) == 0:
            raise NoSubjectDetected()
        if len(face_locations) > 1:
            raise MultipleSubjectsDetected(f"Plusieurs visages détectés ({len(face_locations)})")

        encodings = face_recognition.face_encodings(small_image, face_locations)
        if len(encodings) == 0:
            raise NoSubjectDetected("Descripteur facial non calculable")

        return l2_normalize(np.asarray(encodings[0], dtype=np.float64))


EXTRACTORS = {
    "grid-pool": GridPoolingExtractor,
    "face-recognition": FaceRecognitionExtractor,
}


def build_extractor(settings) -> FeatureExtractor:
    """Construire l'extracteur désigné par la configuration"""
    name = settings.FEATURE_EXTRACTOR
    if name not in EXTRACTORS:
        raise InvalidInput(f"Extracteur inconnu: {name}")

    if name == "grid-pool":
        extractor = GridPoolingExtractor(settings.MIN_SUBJECT_AREA_RATIO)
    else:
        extractor = FaceRecognitionExtractor()

    if extractor.dimension != settings.EMBEDDING_DIMENSION:
        raise InvalidInput(
            f"Dimension de l'extracteur {name} ({extractor.dimension}) "
            f"différente de EMBEDDING_DIMENSION ({settings.EMBEDDING_DIMENSION})"
        )
    logger.info(f"Extracteur: {extractor.model_version} ({extractor.dimension} dimensions)")
    return extractor
