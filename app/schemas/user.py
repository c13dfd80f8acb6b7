"""
Schémas Pydantic pour les utilisateurs
"""
from pydantic import BaseModel
from typing import Optional
from app.models.user import UserRole


class UserSummary(BaseModel):
    """Identité présentée à l'opérateur"""
    id: int
    nom: str
    prenom: str
    matric_number: Optional[str] = None
    role: UserRole
    is_enrolled: bool

    class Config:
        from_attributes = True


class TokenData(BaseModel):
    """Données du token"""
    user_id: Optional[int] = None
    email: Optional[str] = None
    role: Optional[str] = None
