"""
Configuration de l'application
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Paramètres de configuration"""

    # Application
    APP_NAME: str = "BioVault Identité"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Base de données
    DATABASE_URL: str = "sqlite+aiosqlite:///./biovault.db"

    # Sécurité (authentification des appelants par JWT)
    SECRET_KEY: str = "votre-cle-secrete-tres-longue-et-complexe-a-changer"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Chiffrement des gabarits biométriques
    BIOMETRIC_ENCRYPTION_KEY: Optional[str] = None

    # Qualité de capture
    MIN_IMAGE_WIDTH: int = 640
    MIN_IMAGE_HEIGHT: int = 480
    BRIGHTNESS_OPTIMAL_MIN: float = 100.0
    BRIGHTNESS_OPTIMAL_MAX: float = 180.0
    BRIGHTNESS_TOO_DARK: float = 60.0
    BRIGHTNESS_TOO_BRIGHT: float = 220.0
    MIN_SHARPNESS: float = 30.0
    SHARPNESS_REFERENCE: float = 100.0
    SUBJECT_TONE_RATIO: float = 0.15
    QUALITY_WEIGHT_BRIGHTNESS: float = 0.3
    QUALITY_WEIGHT_SHARPNESS: float = 0.4
    QUALITY_WEIGHT_SUBJECT: float = 0.3
    CAPTURE_QUALITY_FLOOR: float = 50.0
    ENROLLMENT_QUALITY_FLOOR: float = 70.0

    # Correspondance (en pourcentage de confiance)
    MATCH_THRESHOLD: float = 85.0
    STRICT_MATCH_THRESHOLD: float = 90.0
    STRICT_MODE: bool = False

    # Extraction et vivacité
    FEATURE_EXTRACTOR: str = "grid-pool"  # "grid-pool" ou "face-recognition"
    EMBEDDING_DIMENSION: int = 128
    MIN_SUBJECT_AREA_RATIO: float = 0.02
    LIVENESS_REQUIRED: bool = True
    LIVENESS_MIN_TEXTURE: float = 50.0
    LIVENESS_MAX_GLARE_RATIO: float = 0.2

    # Jetons d'identité (QR code)
    TOKEN_TTL_SECONDS: int = 300
    TOKEN_ROTATION_SECONDS: int = 30
    TOKEN_DEFAULT_MAX_CONSUMPTIONS: int = 1
    TOKEN_AUDIT_GRACE_SECONDS: int = 86400
    TOKEN_SWEEP_INTERVAL_SECONDS: int = 600  # 0 désactive le nettoyage périodique

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
