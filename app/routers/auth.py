"""
Dépendances d'authentification des appelants
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models.user import User, UserRole
from app.models.verification_attempt import VerificationMethod
from app.schemas.user import UserSummary
from app.services.auth_service import decode_access_token, get_user_by_id

router = APIRouter(prefix="/auth", tags=["Authentification"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

STAFF_ROLES = (UserRole.OPERATOR, UserRole.ADMIN)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Récupérer l'utilisateur courant à partir du token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Token invalide",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = decode_access_token(token)
    if token_data is None:
        raise credentials_exception

    user = await get_user_by_id(db, token_data.user_id)
    if user is None or not user.is_active:
        raise credentials_exception
    return user


async def require_operator(current_user: User = Depends(get_current_user)) -> User:
    """Vérifier que l'utilisateur est opérateur ou administrateur"""
    if current_user.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Accès réservé aux opérateurs"
        )
    return current_user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Vérifier que l'utilisateur est un admin"""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Accès réservé aux administrateurs"
        )
    return current_user


def ensure_self_or_staff(current_user: User, subject_id: int) -> None:
    """Un étudiant n'agit que pour lui-même; un opérateur pour n'importe qui"""
    if current_user.id != subject_id and current_user.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Action non autorisée pour ce sujet"
        )


@router.get("/me", response_model=UserSummary)
async def get_me(current_user: User = Depends(get_current_user)):
    """Récupérer les informations de l'utilisateur connecté"""
    return current_user


def ensure_manual_unless_staff(current_user: User, method, match_score) -> None:
    """Seul un opérateur peut déclarer un pointage facial ou par jeton"""
    if current_user.role in STAFF_ROLES:
        return
    if method != VerificationMethod.MANUAL or match_score is not None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Méthode de pointage réservée aux opérateurs"
        )
