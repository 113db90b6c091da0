from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.dependencies import get_current_user, require_roles
from vbs.models import Role, User
from vbs.schemas import CommandeResponse, CommandeStatusUpdate, ContactPrestataire
from vbs.services import commande_service

router = APIRouter(prefix="/api/v1/commandes", tags=["commandes"])

require_prestataire = require_roles(Role.PRESTATAIRE)

@router.post("/contact", status_code=201, response_model=CommandeResponse)
async def contact_prestataire(
    data: ContactPrestataire,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await commande_service.contact_prestataire(db, user, data.demande_id, data.prestataire_id)

@router.get("", response_model=list[CommandeResponse])
async def list_my_commandes(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await commande_service.list_my_commandes(db, user)

@router.get("/prestataire", response_model=list[CommandeResponse])
async def list_commandes_for_prestataire(
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await commande_service.list_commandes_for_prestataire(db, user)

@router.get("/{commande_id}", response_model=CommandeResponse)
async def get_commande(
    commande_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await commande_service.get_commande(db, commande_id, user)

@router.post("/{commande_id}/terminer", response_model=CommandeResponse)
async def terminer_commande(
    commande_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await commande_service.terminer_commande(db, commande_id, user)

@router.patch("/{commande_id}/statut", response_model=CommandeResponse)
async def update_status(
    commande_id: int,
    data: CommandeStatusUpdate,
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await commande_service.update_status(db, commande_id, data.statut, user)
