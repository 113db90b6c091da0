from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.dependencies import get_current_user, require_admin
from vbs.models import User
from vbs.schemas import AbonnementCreate, AbonnementDetail, AbonnementResponse, PlanResponse
from vbs.services import abonnement_service

router = APIRouter(prefix="/api/v1/abonnements", tags=["abonnements"])

@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db)):
    return await abonnement_service.list_plans(db)

@router.post("", status_code=201, response_model=AbonnementResponse)
async def create_abonnement(
    data: AbonnementCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await abonnement_service.create_abonnement(db, user, data)

@router.get("/me", response_model=AbonnementDetail | None)
async def get_my_abonnement(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await abonnement_service.get_my_abonnement(db, user)

@router.patch("/{abonnement_id}/activate", response_model=AbonnementResponse)
async def activate_abonnement(
    abonnement_id: int,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await abonnement_service.activate_abonnement(db, abonnement_id)
