from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.schemas import SecteurResponse, ServiceResponse
from vbs.services import catalog_service

router = APIRouter(prefix="/api/v1", tags=["catalog"])

@router.get("/secteurs", response_model=list[SecteurResponse])
async def list_secteurs(db: AsyncSession = Depends(get_db)):
    return await catalog_service.list_secteurs(db)

@router.get("/services", response_model=list[ServiceResponse])
async def list_services(sous_secteur_id: int | None = None, db: AsyncSession = Depends(get_db)):
    return await catalog_service.list_services(db, sous_secteur_id)
