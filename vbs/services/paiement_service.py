"""
Paiement service — subscription payments.

Two channels exist: Wave (mobile money, confirmed by webhook) and cash
(declared by the provider with a receipt, validated by an admin).  A
payment is always created ``EN_ATTENTE``; confirming it activates the
subscription it pays for.
"""
import hashlib
import hmac
import logging
import time
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vbs.cache import cache
from vbs.config import settings
from vbs.exceptions import BadRequestError, ForbiddenError, NotFoundError, UnauthorizedError
from vbs.models import (
    Abonnement,
    MethodePaiement,
    Paiement,
    Prestataire,
    StatutAbonnement,
    StatutPaiement,
    TypeAbonnement,
    User,
)
from vbs.schemas import WaveWebhookPayload

logger = logging.getLogger(__name__)


def _current_period(now: datetime, type_: TypeAbonnement) -> tuple[datetime, datetime]:
    """Calendar month (MENSUEL) or calendar year (ANNUEL) containing *now*."""
    if type_ == TypeAbonnement.MENSUEL:
        start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        next_month = start.replace(year=start.year + 1, month=1) if start.month == 12 else start.replace(month=start.month + 1)
        return start, next_month
    start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, start.replace(year=start.year + 1)


async def _ensure_abonnement_disponible(
    db: AsyncSession, user: User, abonnement_id: int, methode: MethodePaiement
) -> Abonnement:
    """
    The subscription must exist, belong to the caller, not be active yet,
    have no pending payment through the same channel, and not overlap
    another active subscription of the same type for the current period.
    Pending rows never block each other.
    """
    abonnement = (
        await db.execute(
            select(Abonnement)
            .where(Abonnement.id == abonnement_id)
            .options(selectinload(Abonnement.prestataire), selectinload(Abonnement.plan))
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if abonnement is None:
        raise NotFoundError("Abonnement", abonnement_id)
    if abonnement.prestataire.user_id != user.id:
        raise ForbiddenError("This subscription does not belong to you")
    if abonnement.statut == StatutAbonnement.ACTIF:
        raise BadRequestError("This subscription is already active")

    pending = await db.execute(
        select(Paiement.id)
        .where(Paiement.abonnement_id == abonnement_id)
        .where(Paiement.statut == StatutPaiement.EN_ATTENTE)
        .where(Paiement.methode == methode)
    )
    if pending.first() is not None:
        raise BadRequestError("A payment is already awaiting validation for this subscription")

    type_ = abonnement.plan.type if abonnement.plan else abonnement.type
    start, end = _current_period(datetime.now(timezone.utc), type_)
    overlapping = await db.execute(
        select(Abonnement.id)
        .where(Abonnement.prestataire_id == abonnement.prestataire_id)
        .where(Abonnement.id != abonnement.id)
        .where(Abonnement.type == type_)
        .where(Abonnement.statut == StatutAbonnement.ACTIF)
        .where(Abonnement.date_debut < end)
        .where(Abonnement.date_fin >= start)
    )
    if overlapping.first() is not None:
        raise BadRequestError(
            f"Another {type_.value.lower()} subscription is already active for this period"
        )
    return abonnement


async def initier_wave(db: AsyncSession, user: User, abonnement_id: int, montant: float) -> tuple[Paiement, str]:
    """Create a pending Wave payment and return it with its checkout URL."""
    abonnement = await _ensure_abonnement_disponible(db, user, abonnement_id, MethodePaiement.WAVE)
    paiement = Paiement(
        abonnement_id=abonnement.id,
        prestataire_id=abonnement.prestataire_id,
        methode=MethodePaiement.WAVE,
        montant=montant,
        reference_externe=f"WAVE_{time.time_ns() // 1_000_000}_{abonnement.id}",
    )
    db.add(paiement)
    await db.flush()
    logger.info("Wave payment %s initiated for abonnement %s", paiement.id, abonnement.id)
    return paiement, f"{settings.WAVE_PAYMENT_URL.rstrip('/')}/{paiement.reference_externe}"


async def declarer_especes(
    db: AsyncSession, user: User, abonnement_id: int, montant: float, justificatif_url: str
) -> Paiement:
    abonnement = await _ensure_abonnement_disponible(db, user, abonnement_id, MethodePaiement.ESPECES)
    paiement = Paiement(
        abonnement_id=abonnement.id,
        prestataire_id=abonnement.prestataire_id,
        methode=MethodePaiement.ESPECES,
        montant=montant,
        justificatif_url=justificatif_url,
    )
    db.add(paiement)
    await db.flush()
    logger.info("Cash payment %s declared for abonnement %s", paiement.id, abonnement.id)
    return paiement


async def activate_for_paiement(db: AsyncSession, paiement: Paiement) -> None:
    """Activate the subscription paid by *paiement* and make its provider visible."""
    abonnement = await db.get(Abonnement, paiement.abonnement_id)
    if abonnement is not None:
        abonnement.statut = StatutAbonnement.ACTIF
    prestataire = await db.get(Prestataire, paiement.prestataire_id)
    prestataire.abonnement_actif = True
    prestataire.disponibilite = True
    await db.flush()
    await cache.invalidate_prestataire(prestataire.id)
    logger.info(
        "Abonnement %s activated by payment %s", paiement.abonnement_id, paiement.id
    )


async def confirmer_paiement(
    db: AsyncSession, paiement_id: int, reference_externe: str | None = None
) -> Paiement:
    paiement = await db.get(Paiement, paiement_id)
    if paiement is None:
        raise NotFoundError("Paiement", paiement_id)
    if paiement.statut == StatutPaiement.VALIDE:
        return paiement
    if paiement.statut != StatutPaiement.EN_ATTENTE:
        raise BadRequestError("This payment has already been refused")

    paiement.statut = StatutPaiement.VALIDE
    paiement.reference_externe = reference_externe or paiement.reference_externe
    paiement.date_validation = datetime.now(timezone.utc)
    await db.flush()
    await activate_for_paiement(db, paiement)
    return paiement


def verify_wave_signature(body: bytes, signature: str | None) -> None:
    expected = hmac.new(settings.WAVE_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    if not signature or not hmac.compare_digest(expected, signature):
        raise UnauthorizedError("Invalid webhook signature")


async def handle_wave_webhook(db: AsyncSession, payload: WaveWebhookPayload) -> Paiement | None:
    """
    Confirm the payment carrying the webhook reference when Wave reports a
    success.  Unknown references and refused payments are logged and
    acknowledged so Wave stops retrying.
    """
    if payload.status != "success":
        logger.info("Wave webhook ignored (status=%s)", payload.status)
        return None
    reference = payload.reference or payload.transaction_id
    if not reference:
        return None

    paiement = (
        await db.execute(select(Paiement).where(Paiement.reference_externe == reference))
    ).scalar_one_or_none()
    if paiement is None:
        logger.warning("Wave webhook for unknown reference %r", reference)
        return None
    if paiement.statut == StatutPaiement.REJETE:
        logger.warning("Wave webhook for refused payment %s (reference %r)", paiement.id, reference)
        return None
    return await confirmer_paiement(db, paiement.id)


async def get_historique(db: AsyncSession, user: User) -> list[Paiement]:
    prestataire_id = (
        await db.execute(select(Prestataire.id).where(Prestataire.user_id == user.id))
    ).scalar_one_or_none()
    if prestataire_id is None:
        return []
    q = (
        select(Paiement)
        .where(Paiement.prestataire_id == prestataire_id)
        .order_by(Paiement.created_at.desc(), Paiement.id.desc())
    )
    return list((await db.execute(q)).scalars().all())
