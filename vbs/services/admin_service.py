"""
Admin service — platform statistics, KYC moderation and manual payment
validation.

Every decision taken here appends an ``AdminAction`` row carrying the
admin id, the target id and the optional free-text reason.

KYC is a one-way workflow: ``EN_ATTENTE`` -> ``VALIDE`` | ``REFUSE``.
Both outcomes are terminal and nothing in this service writes
``EN_ATTENTE`` back.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from vbs.cache import cache
from vbs.exceptions import BadRequestError, NotFoundError
from vbs.models import (
    Abonnement,
    AdminAction,
    Commande,
    Demande,
    KycStatut,
    MethodePaiement,
    Paiement,
    Prestataire,
    StatutAbonnement,
    StatutCommande,
    StatutDemande,
    StatutPaiement,
    User,
)
from vbs.schemas import AdminStatsResponse
from vbs.services import paiement_service

logger = logging.getLogger(__name__)

_OPEN_COMMANDES = (StatutCommande.EN_ATTENTE, StatutCommande.ACCEPTEE, StatutCommande.EN_COURS)


async def _count(db: AsyncSession, q) -> int:
    return (await db.execute(select(func.count()).select_from(q.subquery()))).scalar_one()


async def get_global_stats(db: AsyncSession) -> AdminStatsResponse:
    active_prestataires = (
        select(Prestataire.id)
        .join(User, User.id == Prestataire.user_id)
        .where(User.actif.is_(True))
    )
    turnover = (
        await db.execute(
            select(func.coalesce(func.sum(Commande.prix), 0.0)).where(
                Commande.statut == StatutCommande.TERMINEE
            )
        )
    ).scalar_one()

    return AdminStatsResponse(
        total_utilisateurs=await _count(db, select(User.id).where(User.actif.is_(True))),
        total_prestataires=await _count(db, active_prestataires),
        prestataires_pending_kyc=await _count(
            db, active_prestataires.where(Prestataire.kyc_statut == KycStatut.EN_ATTENTE)
        ),
        paiements_pending_validation=await _count(
            db,
            select(Paiement.id)
            .where(Paiement.statut == StatutPaiement.EN_ATTENTE)
            .where(Paiement.methode == MethodePaiement.ESPECES),
        ),
        demandes_actives=await _count(
            db, select(Demande.id).where(Demande.statut == StatutDemande.EN_ATTENTE)
        ),
        commandes_en_cours=await _count(
            db, select(Commande.id).where(Commande.statut.in_(_OPEN_COMMANDES))
        ),
        abonnements_actifs=await _count(
            db, select(Abonnement.id).where(Abonnement.statut == StatutAbonnement.ACTIF)
        ),
        chiffre_affaire_total=float(turnover),
        cache_info=cache.stats,
    )


async def get_recent_activities(db: AsyncSession, limit: int = 20) -> list[AdminAction]:
    q = select(AdminAction).order_by(AdminAction.created_at.desc(), AdminAction.id.desc()).limit(limit)
    return list((await db.execute(q)).scalars().all())


async def _record(db: AsyncSession, admin: User, type_: str, cible_id: int, motif: str | None) -> None:
    db.add(AdminAction(admin_id=admin.id, type=type_, cible_id=cible_id, meta={"motif": motif}))
    await db.flush()


# ---------------------------------------------------------------------------
# KYC
# ---------------------------------------------------------------------------

async def list_prestataires_pending_kyc(db: AsyncSession) -> list[Prestataire]:
    q = (
        select(Prestataire)
        .where(Prestataire.kyc_statut == KycStatut.EN_ATTENTE)
        .options(joinedload(Prestataire.user))
        .order_by(Prestataire.created_at.desc(), Prestataire.id.desc())
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(q)).scalars().all())


async def validate_kyc(
    db: AsyncSession,
    prestataire_id: int,
    statut: KycStatut,
    admin: User,
    motif: str | None = None,
) -> Prestataire:
    """
    Decide a pending KYC.  *statut* must be ``VALIDE`` or ``REFUSE``; a
    provider whose KYC has already been decided cannot be decided again.
    """
    if statut == KycStatut.EN_ATTENTE:
        raise BadRequestError("A KYC decision must be VALIDE or REFUSE")

    prestataire = (
        await db.execute(
            select(Prestataire).where(Prestataire.id == prestataire_id).with_for_update()
        )
    ).scalar_one_or_none()
    if prestataire is None:
        raise NotFoundError("Prestataire", prestataire_id)
    if prestataire.kyc_statut != KycStatut.EN_ATTENTE:
        raise BadRequestError(f"KYC already decided ({prestataire.kyc_statut.value})")

    prestataire.kyc_statut = statut
    prestataire.kyc_motif = motif if statut == KycStatut.REFUSE else None
    await db.flush()
    await _record(db, admin, f"KYC_{statut.value}", prestataire.id, motif)
    await cache.invalidate_prestataire(prestataire.id)

    logger.info("KYC of prestataire %s set to %s by admin %s", prestataire.id, statut.value, admin.id)
    return prestataire


# ---------------------------------------------------------------------------
# Cash payments
# ---------------------------------------------------------------------------

async def list_pending_cash_payments(db: AsyncSession) -> list[Paiement]:
    q = (
        select(Paiement)
        .where(Paiement.methode == MethodePaiement.ESPECES)
        .where(Paiement.statut == StatutPaiement.EN_ATTENTE)
        .options(
            selectinload(Paiement.abonnement).selectinload(Abonnement.plan),
            selectinload(Paiement.prestataire),
        )
        .order_by(Paiement.created_at.desc(), Paiement.id.desc())
        .execution_options(populate_existing=True)
    )
    return list((await db.execute(q)).scalars().all())


async def validate_paiement(
    db: AsyncSession,
    paiement_id: int,
    statut: str,
    admin: User,
    motif: str | None = None,
) -> Paiement:
    """
    Accept (``VALIDE``) or refuse (``REFUSE``) a pending payment.  Accepting
    activates the subscription and the provider's visibility; refusing
    stores ``REJETE``.
    """
    paiement = (
        await db.execute(select(Paiement).where(Paiement.id == paiement_id).with_for_update())
    ).scalar_one_or_none()
    if paiement is None:
        raise NotFoundError("Paiement", paiement_id)
    if paiement.statut != StatutPaiement.EN_ATTENTE:
        raise BadRequestError(f"Payment already processed ({paiement.statut.value})")

    paiement.date_validation = datetime.now(timezone.utc)
    if statut == "VALIDE":
        paiement.statut = StatutPaiement.VALIDE
        await db.flush()
        await paiement_service.activate_for_paiement(db, paiement)
    else:
        paiement.statut = StatutPaiement.REJETE
        await db.flush()

    await _record(db, admin, f"PAIEMENT_{statut}", paiement.id, motif)
    logger.info("Paiement %s set to %s by admin %s", paiement.id, paiement.statut.value, admin.id)
    return paiement
