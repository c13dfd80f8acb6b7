# Modèles de données
# Importer tous les modèles pour que SQLAlchemy puisse résoudre les relations

from app.models.user import User, UserRole
from app.models.biometric import BiometricTemplate
from app.models.verification_attempt import (
    VerificationAttempt, AttemptMode, AttemptOutcome, VerificationMethod
)
from app.models.identity_token import IdentityToken
from app.models.occupancy import Resource, ResourceKind, OccupancyRecord

__all__ = [
    "User",
    "UserRole",
    "BiometricTemplate",
    "VerificationAttempt",
    "AttemptMode",
    "AttemptOutcome",
    "VerificationMethod",
    "IdentityToken",
    "Resource",
    "ResourceKind",
    "OccupancyRecord",
]
