"""
Authentification des appelants (étudiants, opérateurs, kiosques) par JWT
L'émission de jetons de session (connexion) est hors du périmètre de ce service.
"""
from datetime import datetime, timedelta
from typing import Optional
import logging

from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.user import User
from app.schemas.user import TokenData

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Créer un token JWT"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_user_token(user: User) -> str:
    return create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role.value}
    )


def decode_access_token(token: str) -> Optional[TokenData]:
    """Décoder un token JWT"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        # sub peut être un int ou une string selon l'encodage JWT
        user_id_raw = payload.get("sub")
        if user_id_raw is None:
            return None
        return TokenData(
            user_id=int(user_id_raw),
            email=payload.get("email"),
            role=payload.get("role")
        )
    except JWTError as e:
        logger.warning(f"JWT invalide: {e}")
        return None
    except (ValueError, TypeError) as e:
        logger.warning(f"Token mal formé: {e}")
        return None


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """Récupérer un utilisateur par ID"""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Récupérer un utilisateur par email"""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()
