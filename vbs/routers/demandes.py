from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.dependencies import get_current_user, require_roles
from vbs.models import Role, User
from vbs.schemas import DemandeCreate, DemandeResponse
from vbs.services import demande_service

router = APIRouter(prefix="/api/v1/demandes", tags=["demandes"])

require_prestataire = require_roles(Role.PRESTATAIRE)

@router.post("", status_code=201, response_model=DemandeResponse)
async def create_demande(
    data: DemandeCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await demande_service.create_demande(db, user, data)

@router.get("", response_model=list[DemandeResponse])
async def list_my_demandes(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await demande_service.list_my_demandes(db, user)

@router.get("/prestataire", response_model=list[DemandeResponse])
async def list_demandes_for_prestataire(
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await demande_service.list_demandes_for_prestataire(db, user)

@router.post("/{demande_id}/accept", response_model=DemandeResponse)
async def accept_demande(
    demande_id: int,
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await demande_service.accept_demande(db, demande_id, user)

@router.post("/{demande_id}/refuse", response_model=DemandeResponse)
async def refuse_demande(
    demande_id: int,
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await demande_service.refuse_demande(db, demande_id, user)
