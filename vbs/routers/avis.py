from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.dependencies import get_current_user
from vbs.models import User
from vbs.schemas import AvisCreate, AvisResponse
from vbs.services import avis_service

router = APIRouter(prefix="/api/v1/avis", tags=["avis"])

@router.post("", status_code=201, response_model=AvisResponse)
async def create_avis(
    data: AvisCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await avis_service.create_avis(db, user, data)

@router.get("/prestataire/{prestataire_id}", response_model=list[AvisResponse])
async def list_avis_for_prestataire(prestataire_id: int, db: AsyncSession = Depends(get_db)):
    return await avis_service.list_avis_for_prestataire(db, prestataire_id)

@router.get("/commande/{commande_id}", response_model=AvisResponse)
async def get_avis_for_commande(commande_id: int, db: AsyncSession = Depends(get_db)):
    return await avis_service.get_avis_for_commande(db, commande_id)
