"""
Routes des jetons d'identité (QR code)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_token_service
from app.models.user import User
from app.routers.auth import get_current_user, require_operator, require_admin, ensure_self_or_staff
from app.schemas.occupancy import OccupancyRecordResponse
from app.schemas.token import (
    IssueTokenRequest, IssueTokenResponse, RedeemTokenRequest, RedeemTokenResponse, SweepResponse
)
from app.schemas.user import UserSummary
from app.services.token_service import IdentityTokenService

router = APIRouter(prefix="/tokens", tags=["Jetons d'identité"])


@router.post("/issue", response_model=IssueTokenResponse)
async def issue_token(
    data: IssueTokenRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: IdentityTokenService = Depends(get_token_service)
):
    """Émettre un jeton (le client le ré-émet avant expiration pour la rotation)"""
    subject_id = data.subject_id or current_user.id
    ensure_self_or_staff(current_user, subject_id)
    issued = await service.issue(db, subject_id, data.max_consumptions)
    return IssueTokenResponse(
        code_value=issued.code_value,
        expires_at=issued.expires_at,
        issued_at=issued.issued_at,
        max_consumptions=issued.max_consumptions,
        rotation_seconds=issued.rotation_seconds,
    )


@router.post("/redeem", response_model=RedeemTokenResponse)
async def redeem_token(
    data: RedeemTokenRequest,
    operator: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    service: IdentityTokenService = Depends(get_token_service)
):
    """Utiliser un jeton scanné par un opérateur ou un kiosque"""
    result = await service.redeem(
        db, data.code, data.intent,
        resource_id=data.resource_id,
        operator_id=operator.id
    )
    subject = await db.get(User, result.subject_id)
    return RedeemTokenResponse(
        subject_id=result.subject_id,
        subject=UserSummary.model_validate(subject) if subject else None,
        intent=result.intent,
        consumption_count=result.consumption_count,
        max_consumptions=result.max_consumptions,
        occupancy_record=(
            OccupancyRecordResponse.model_validate(result.record) if result.record else None
        ),
    )


@router.post("/sweep", response_model=SweepResponse)
async def sweep_tokens(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    service: IdentityTokenService = Depends(get_token_service)
):
    """Supprimer les jetons expirés au-delà de la période de grâce"""
    return SweepResponse(deleted=await service.sweep_expired(db))
