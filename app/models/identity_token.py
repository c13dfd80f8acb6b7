"""
Modèle pour les jetons d'identité à durée de vie courte (QR code)
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from app.database import Base


class IdentityToken(Base):
    """
    Jeton lié à un sujet
    - consumption_count <= max_consumptions
    - invalide dès que expires_at <= maintenant
    """
    __tablename__ = "identity_tokens"
    __table_args__ = (
        CheckConstraint("consumption_count <= max_consumptions", name="ck_token_consumptions"),
    )

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code_value = Column(String(128), unique=True, index=True, nullable=False)

    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    consumed_at = Column(DateTime, nullable=True)
    revoked_at = Column(DateTime, nullable=True)  # Remplacé par un jeton plus récent

    consumption_count = Column(Integer, nullable=False, default=0)
    max_consumptions = Column(Integer, nullable=False, default=1)

    subject = relationship("User", back_populates="identity_tokens")

    def __repr__(self):
        return f"<IdentityToken subject_id={self.subject_id} {self.consumption_count}/{self.max_consumptions}>"
