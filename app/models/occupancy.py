"""
Modèles pour la présence (séances de cours) et l'accès aux services
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, Float, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.database import Base
from app.models.verification_attempt import VerificationMethod


class ResourceKind(str, enum.Enum):
    LECTURE_SESSION = "lecture_session"
    FACILITY = "facility"


class Resource(Base):
    """Séance de cours ou service (bibliothèque, cafétéria...)"""
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    kind = Column(Enum(ResourceKind), nullable=False, default=ResourceKind.FACILITY)
    location = Column(String(255), nullable=True)
    max_capacity = Column(Integer, nullable=True)  # None = illimitée
    current_occupancy = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    records = relationship("OccupancyRecord", back_populates="resource")

    def __repr__(self):
        return f"<Resource {self.name}>"


class OccupancyRecord(Base):
    """Intervalle de présence d'un sujet sur une ressource"""
    __tablename__ = "occupancy_records"
    __table_args__ = (
        Index(
            "uq_open_occupancy",
            "subject_id", "resource_id",
            unique=True,
            sqlite_where=text("exit_time IS NULL"),
            postgresql_where=text("exit_time IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    entry_time = Column(DateTime, nullable=False)
    exit_time = Column(DateTime, nullable=True)
    method = Column(Enum(VerificationMethod), nullable=False)
    match_score = Column(Float, nullable=True)
    operator_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    resource = relationship("Resource", back_populates="records")

    @property
    def is_open(self) -> bool:
        return self.exit_time is None

    def __repr__(self):
        return f"<OccupancyRecord subject_id={self.subject_id} resource_id={self.resource_id}>"
