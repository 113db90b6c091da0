"""
Catalog service — read-only access to the Secteur / SousSecteur / Service
taxonomy.  The tree is maintained by back-office tooling, not this API.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vbs.models import Secteur, Service, SousSecteur


async def list_secteurs(db: AsyncSession) -> list[Secteur]:
    """Full tree sorted by name at every level, active services only."""
    q = (
        select(Secteur)
        .options(
            selectinload(Secteur.sous_secteurs).selectinload(
                SousSecteur.services.and_(Service.actif.is_(True))
            )
        )
        .order_by(Secteur.nom)
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(q)).scalars().all())


async def list_services(db: AsyncSession, sous_secteur_id: int | None = None) -> list[Service]:
    q = select(Service).where(Service.actif.is_(True)).order_by(Service.nom)
    if sous_secteur_id is not None:
        q = q.where(Service.sous_secteur_id == sous_secteur_id)
    return list((await db.execute(q)).scalars().all())
