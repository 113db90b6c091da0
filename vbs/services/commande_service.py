"""
Commande service — orders opened from accepted requests.

Status moves forward only: ``TERMINEE`` and ``ANNULEE`` are terminal, and
the review flow relies on a completed order staying completed.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vbs.exceptions import BadRequestError, ForbiddenError, NotFoundError
from vbs.models import Commande, Demande, Prestataire, Role, StatutCommande, StatutDemande, User
from vbs.services import prestataire_service

logger = logging.getLogger(__name__)

TERMINAL_STATES = frozenset({StatutCommande.TERMINEE, StatutCommande.ANNULEE})


def _with_avis(q):
    return q.options(selectinload(Commande.avis)).execution_options(populate_existing=True)


async def contact_prestataire(
    db: AsyncSession, user: User, demande_id: int, prestataire_id: int
) -> Commande:
    """
    Open an ``EN_COURS`` order between the caller's request and a provider.
    Contacting the same provider again for the same request returns the
    existing order.
    """
    demande = await db.get(Demande, demande_id)
    if demande is None:
        raise NotFoundError("Demande", demande_id)
    if demande.utilisateur_id != user.id:
        raise ForbiddenError("This request does not belong to you")
    if await db.get(Prestataire, prestataire_id) is None:
        raise NotFoundError("Prestataire", prestataire_id)

    existing = (
        await db.execute(
            select(Commande)
            .where(Commande.demande_id == demande_id)
            .where(Commande.prestataire_id == prestataire_id)
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing

    demande.statut = StatutDemande.ACCEPTEE
    commande = Commande(
        demande_id=demande_id,
        prestataire_id=prestataire_id,
        utilisateur_id=user.id,
        statut=StatutCommande.EN_COURS,
    )
    db.add(commande)
    await db.flush()
    logger.info("Commande %s opened from demande %s", commande.id, demande_id)
    return commande


async def list_my_commandes(db: AsyncSession, user: User) -> list[Commande]:
    q = _with_avis(
        select(Commande)
        .where(Commande.utilisateur_id == user.id)
        .order_by(Commande.created_at.desc(), Commande.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_commandes_for_prestataire(db: AsyncSession, user: User) -> list[Commande]:
    prestataire = await prestataire_service.get_by_user(db, user)
    q = _with_avis(
        select(Commande)
        .where(Commande.prestataire_id == prestataire.id)
        .order_by(Commande.created_at.desc(), Commande.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


async def list_all_commandes(db: AsyncSession, limit: int = 200) -> list[Commande]:
    q = _with_avis(select(Commande).order_by(Commande.created_at.desc(), Commande.id.desc()).limit(limit))
    return list((await db.execute(q)).scalars().all())


async def get_commande(db: AsyncSession, commande_id: int, user: User) -> Commande:
    """Visible to the client, the provider and admins."""
    q = _with_avis(select(Commande).where(Commande.id == commande_id))
    commande = (await db.execute(q)).scalar_one_or_none()
    if commande is None:
        raise NotFoundError("Commande", commande_id)
    if user.role == Role.ADMIN or commande.utilisateur_id == user.id:
        return commande
    prestataire = (
        await db.execute(select(Prestataire.id).where(Prestataire.user_id == user.id))
    ).scalar_one_or_none()
    if prestataire != commande.prestataire_id:
        raise ForbiddenError("This order does not concern you")
    return commande


def _ensure_open(commande: Commande) -> None:
    if commande.statut in TERMINAL_STATES:
        raise BadRequestError(f"Order is already {commande.statut.value}")


async def terminer_commande(db: AsyncSession, commande_id: int, user: User) -> Commande:
    """The client marks the order as completed, which unlocks the review."""
    commande = await db.get(Commande, commande_id)
    if commande is None:
        raise NotFoundError("Commande", commande_id)
    if commande.utilisateur_id != user.id:
        raise ForbiddenError("This order does not belong to you")
    _ensure_open(commande)

    commande.statut = StatutCommande.TERMINEE
    await db.flush()
    logger.info("Commande %s completed by user %s", commande.id, user.id)
    return commande


async def update_status(
    db: AsyncSession, commande_id: int, statut: StatutCommande, user: User
) -> Commande:
    """The provider moves one of its own orders to *statut*."""
    prestataire = await prestataire_service.get_by_user(db, user)
    commande = await db.get(Commande, commande_id)
    if commande is None or commande.prestataire_id != prestataire.id:
        raise NotFoundError("Commande", commande_id)
    _ensure_open(commande)
    if statut == StatutCommande.EN_ATTENTE:
        raise BadRequestError("An order cannot go back to EN_ATTENTE")

    commande.statut = statut
    await db.flush()
    logger.info("Commande %s moved to %s by prestataire %s", commande.id, statut.value, prestataire.id)
    return commande
