from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.dependencies import PaginationParams, get_current_user, require_roles
from vbs.models import Role, User
from vbs.schemas import (
    DisponibiliteUpdate,
    PaginatedResponse,
    PrestataireCreate,
    PrestataireDetail,
    PrestataireResponse,
    PrestataireSummary,
)
from vbs.services import prestataire_service

router = APIRouter(prefix="/api/v1/prestataires", tags=["prestataires"])

require_prestataire = require_roles(Role.PRESTATAIRE)

@router.get("", response_model=PaginatedResponse)
async def search_prestataires(
    search: str | None = Query(None, max_length=100),
    service_id: int | None = None,
    sous_secteur_id: int | None = None,
    secteur_id: int | None = None,
    tri: str = Query(prestataire_service.SORT_NOTE, pattern="^(note|recent|distance)$"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await prestataire_service.search_prestataires(
        db,
        search=search,
        service_id=service_id,
        sous_secteur_id=sous_secteur_id,
        secteur_id=secteur_id,
        tri=tri,
        page=pagination.page,
        page_size=pagination.page_size,
    )

@router.post("", status_code=201, response_model=PrestataireResponse)
async def create_prestataire(
    data: PrestataireCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await prestataire_service.create_prestataire(db, user, data)

@router.get("/me", response_model=PrestataireSummary)
async def get_my_prestataire(
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await prestataire_service.get_my_prestataire(db, user)

@router.patch("/me/disponibilite", response_model=PrestataireResponse)
async def update_disponibilite(
    data: DisponibiliteUpdate,
    user: User = Depends(require_prestataire),
    db: AsyncSession = Depends(get_db),
):
    return await prestataire_service.update_disponibilite(db, user, data.disponibilite)

@router.get("/{prestataire_id}", response_model=PrestataireDetail)
async def get_prestataire(prestataire_id: int, db: AsyncSession = Depends(get_db)):
    return await prestataire_service.get_prestataire(db, prestataire_id)
