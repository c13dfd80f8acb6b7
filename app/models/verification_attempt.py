"""
Journal d'audit des tentatives de vérification (ajout seul)
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, Float
from datetime import datetime
import enum

from app.database import Base


class AttemptMode(str, enum.Enum):
    ENROLL = "ENROLL"
    VERIFY = "VERIFY"


class AttemptOutcome(str, enum.Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


class VerificationMethod(str, enum.Enum):
    """Méthode d'identification"""
    FACIAL = "FACIAL"
    TOKEN = "TOKEN"
    MANUAL = "MANUAL"
    FINGERPRINT = "FINGERPRINT"  # Réservé, non implémenté


class VerificationAttempt(Base):
    """Tentative d'enrôlement ou de vérification, immuable une fois écrite"""
    __tablename__ = "verification_attempts"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    mode = Column(Enum(AttemptMode), nullable=False)
    outcome = Column(Enum(AttemptOutcome), nullable=False)
    method = Column(Enum(VerificationMethod), nullable=False)
    confidence = Column(Float, nullable=True)
    reason_code = Column(String(40), nullable=True, index=True)
    quality_score = Column(Float, nullable=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=True)
    operator_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    detail = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<VerificationAttempt {self.mode.value} {self.outcome.value} {self.reason_code}>"
