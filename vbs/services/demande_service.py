"""
Demande service — service requests filed by clients.

A provider answers a pending request by accepting it (which opens an
order) or refusing it; answered requests are final.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from vbs.exceptions import BadRequestError, NotFoundError
from vbs.models import Commande, Demande, PrestataireService, Service, StatutDemande, User
from vbs.schemas import DemandeCreate
from vbs.services import prestataire_service

logger = logging.getLogger(__name__)


def _with_service(q):
    return q.options(joinedload(Demande.service)).execution_options(populate_existing=True)


async def create_demande(db: AsyncSession, user: User, data: DemandeCreate) -> Demande:
    service = await db.get(Service, data.service_id)
    if service is None or not service.actif:
        raise NotFoundError("Service", data.service_id)

    demande = Demande(
        utilisateur_id=user.id,
        service_id=service.id,
        description=data.description,
        adresse=data.adresse or user.address,
    )
    db.add(demande)
    await db.flush()
    demande.service = service
    return demande


async def list_my_demandes(db: AsyncSession, user: User) -> list[Demande]:
    q = _with_service(
        select(Demande)
        .where(Demande.utilisateur_id == user.id)
        .order_by(Demande.created_at.desc(), Demande.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_demandes_for_prestataire(db: AsyncSession, user: User) -> list[Demande]:
    """Requests targeting any service the provider offers."""
    prestataire = await prestataire_service.get_by_user(db, user)
    offered = select(PrestataireService.service_id).where(
        PrestataireService.prestataire_id == prestataire.id
    )
    q = _with_service(
        select(Demande)
        .where(Demande.service_id.in_(offered))
        .order_by(Demande.created_at.desc(), Demande.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_all_demandes(db: AsyncSession, limit: int = 200) -> list[Demande]:
    q = _with_service(select(Demande).order_by(Demande.created_at.desc(), Demande.id.desc()).limit(limit))
    return list((await db.execute(q)).scalars().all())


async def _get_pending(db: AsyncSession, demande_id: int) -> Demande:
    demande = await db.get(Demande, demande_id)
    if demande is None:
        raise NotFoundError("Demande", demande_id)
    if demande.statut != StatutDemande.EN_ATTENTE:
        raise BadRequestError("This request has already been answered")
    return demande


async def accept_demande(db: AsyncSession, demande_id: int, user: User) -> Demande:
    """Accept a pending request and open an ``EN_ATTENTE`` order for it."""
    prestataire = await prestataire_service.get_by_user(db, user)
    demande = await _get_pending(db, demande_id)

    demande.statut = StatutDemande.ACCEPTEE
    db.add(
        Commande(
            demande_id=demande.id,
            prestataire_id=prestataire.id,
            utilisateur_id=demande.utilisateur_id,
        )
    )
    await db.flush()
    logger.info("Demande %s accepted by prestataire %s", demande.id, prestataire.id)
    return demande


async def refuse_demande(db: AsyncSession, demande_id: int, user: User) -> Demande:
    prestataire = await prestataire_service.get_by_user(db, user)
    demande = await _get_pending(db, demande_id)
    demande.statut = StatutDemande.REFUSEE
    await db.flush()
    logger.info("Demande %s refused by prestataire %s", demande.id, prestataire.id)
    return demande
