"""
Modèle pour les gabarits biométriques
"""
from sqlalchemy import Column, Integer, String, ForeignKey, LargeBinary, DateTime, Float, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime

from app.database import Base


class BiometricTemplate(Base):
    """
    Gabarit biométrique chiffré (jamais l'image brute)
    - Un seul gabarit actif par sujet et par modalité
    - Remplacement par ajout puis retrait (retired_at), jamais modifié sur place
    """
    __tablename__ = "biometric_templates"
    __table_args__ = (
        Index(
            "uq_active_template",
            "owner_id", "modality",
            unique=True,
            sqlite_where=text("retired_at IS NULL"),
            postgresql_where=text("retired_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    modality = Column(String(20), nullable=False, default="FACIAL")

    # Vecteur chiffré + paramètres de chiffrement
    encrypted_blob = Column(LargeBinary, nullable=False)
    nonce = Column(LargeBinary, nullable=False)
    encryption_scheme = Column(String(30), nullable=False)

    # Version du modèle d'extraction
    model_version = Column(String(50), nullable=False)
    embedding_dimension = Column(Integer, nullable=False)

    quality_score_at_capture = Column(Float, default=0.0)
    captured_at = Column(DateTime, default=datetime.utcnow)
    retired_at = Column(DateTime, nullable=True)

    # Relation
    owner = relationship("User", back_populates="templates")

    @property
    def is_active(self) -> bool:
        return self.retired_at is None

    def __repr__(self):
        return f"<BiometricTemplate owner_id={self.owner_id} version={self.model_version}>"
