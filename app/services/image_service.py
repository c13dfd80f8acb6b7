"""
Décodage et primitives d'analyse d'image partagées
"""
import base64
import binascii
import logging
from typing import Tuple

import cv2
import numpy as np

from app.exceptions import InvalidInput

logger = logging.getLogger(__name__)


def decode_base64_image(image_base64: str) -> np.ndarray:
    """
    Décoder une image base64 en array numpy RGB
    """
    if not image_base64:
        raise InvalidInput("Image vide")

    # Retirer le préfixe data:image si présent
    if ',' in image_base64:
        image_base64 = image_base64.split(',', 1)[1]

    try:
        image_data = base64.b64decode(image_base64, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidInput(f"Base64 invalide: {e}")

    nparr = np.frombuffer(image_data, np.uint8)
    if nparr.size == 0:
        raise InvalidInput("Image vide")

    # Décoder l'image avec OpenCV
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image is None:
        raise InvalidInput("Format d'image non reconnu")

    # Convertir BGR (OpenCV) en RGB
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def encode_image_base64(image: np.ndarray, ext: str = ".png") -> str:
    """Encoder une image RGB en base64 (captures de test, outils)"""
    ok, buffer = cv2.imencode(ext, cv2.cvtColor(image, cv2.COLOR_RGB2BGR))
    if not ok:
        raise InvalidInput("Encodage de l'image impossible")
    return base64.b64encode(buffer.tobytes()).decode()


def ensure_image(image) -> np.ndarray:
    """
    Valider une image décodée (H x W x 3, uint8)
    Une image mal formée est une violation de contrat, pas un défaut de qualité.
    """
    if not isinstance(image, np.ndarray):
        raise InvalidInput("L'image doit être un tableau numpy")
    if image.dtype != np.uint8:
        raise InvalidInput(f"Type de pixel non supporté: {image.dtype}")
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    elif image.ndim == 3 and image.shape[2] == 4:
        image = image[:, :, :3]
    if image.ndim != 3 or image.shape[2] != 3:
        raise InvalidInput(f"Forme d'image non supportée: {image.shape}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidInput("Image de taille nulle")
    return image


def to_gray(image: np.ndarray) -> np.ndarray:
    return cv2.cvtColor(np.ascontiguousarray(image), cv2.COLOR_RGB2GRAY)


def laplacian_variance(gray: np.ndarray) -> float:
    """Netteté: variance du laplacien"""
    if gray.size == 0:
        return 0.0
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def center_region(image: np.ndarray, fraction: float = 0.4) -> np.ndarray:
    """Région centrale couvrant `fraction` de la largeur et de la hauteur"""
    height, width = image.shape[:2]
    x0 = int(width * (1 - fraction) / 2)
    y0 = int(height * (1 - fraction) / 2)
    w = max(1, int(width * fraction))
    h = max(1, int(height * fraction))
    return image[y0:y0 + h, x0:x0 + w]


def skin_tone_mask(image: np.ndarray) -> np.ndarray:
    """
    Masque des pixels de teinte peau (heuristique RGB, plusieurs carnations)
    """
    pixels = image.astype(np.int16)
    r, g, b = pixels[..., 0], pixels[..., 1], pixels[..., 2]
    return (
        (r > 60) & (g > 40) & (b > 20)
        & (r > g) & (r > b)
        & (np.abs(r - g) > 15) & (r - b > 15)
    )


def skin_tone_ratio(image: np.ndarray) -> float:
    mask = skin_tone_mask(image)
    if mask.size == 0:
        return 0.0
    return float(mask.mean())


def subject_regions(image: np.ndarray, min_area_ratio: float) -> Tuple[Tuple[int, int, int, int], ...]:
    """
    Régions connexes de teinte peau suffisamment grandes
    Returns:
        Tuple de boîtes (x, y, largeur, hauteur)
    """
    mask = skin_tone_mask(image).astype(np.uint8)
    count, _, stats, _ = cv2.connectedComponentsWithStats(mask, connectivity=8)
    min_area = min_area_ratio * mask.size
    boxes = []
    # La composante 0 est le fond
    for label in range(1, count):
        x, y, w, h, area = stats[label]
        if area >= min_area:
            boxes.append((int(x), int(y), int(w), int(h)))
    return tuple(boxes)
