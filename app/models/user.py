"""
Modèle Utilisateur (étudiant, opérateur, administrateur)
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.database import Base


class UserRole(str, enum.Enum):
    """Rôles des utilisateurs"""
    STUDENT = "student"
    OPERATOR = "operator"
    ADMIN = "admin"


class User(Base):
    """Sujet d'identité"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    nom = Column(String(100), nullable=False)
    prenom = Column(String(100), nullable=False)
    matric_number = Column(String(50), unique=True, nullable=True)
    role = Column(Enum(UserRole), default=UserRole.STUDENT, nullable=False)
    is_active = Column(Boolean, default=True)
    is_enrolled = Column(Boolean, default=False)  # Enrôlement biométrique effectué
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relations
    templates = relationship("BiometricTemplate", back_populates="owner")
    identity_tokens = relationship("IdentityToken", back_populates="subject")

    def __repr__(self):
        return f"<User {self.email}>"
