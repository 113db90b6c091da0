"""
Abonnement service — subscription plans and provider subscriptions.

A subscription is created ``EN_ATTENTE`` and only becomes ``ACTIF`` once
its payment is validated (see ``paiement_service`` and
``admin_service.validate_paiement``).  While a provider holds an active
subscription its ``abonnement_actif`` flag is set, which is one of the
conditions for appearing in public search.
"""
import calendar
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vbs.cache import cache
from vbs.config import settings
from vbs.exceptions import BadRequestError, NotFoundError
from vbs.models import (
    Abonnement,
    Paiement,
    PlanAbonnement,
    Prestataire,
    StatutAbonnement,
    TypeAbonnement,
    User,
)
from vbs.schemas import AbonnementCreate, AbonnementDetail, PaiementResponse, PlanResponse

logger = logging.getLogger(__name__)


def add_months(moment: datetime, months: int) -> datetime:
    """Shift *moment* by *months*, clamping the day to the target month length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_end(start: datetime, type_: TypeAbonnement) -> datetime:
    return add_months(start, 1 if type_ == TypeAbonnement.MENSUEL else 12)


async def list_plans(db: AsyncSession) -> list[dict]:
    """Active plans, cheapest first."""
    cached = await cache.get("abonnements:plans")
    if cached is not None:
        return cached

    q = select(PlanAbonnement).where(PlanAbonnement.actif.is_(True)).order_by(PlanAbonnement.prix)
    plans = [
        PlanResponse.model_validate(p).model_dump(mode="json")
        for p in (await db.execute(q)).scalars().all()
    ]
    await cache.set("abonnements:plans", plans, ttl=settings.CACHE_TTL_PLANS)
    return plans


async def create_abonnement(db: AsyncSession, user: User, data: AbonnementCreate) -> Abonnement:
    """
    Open an ``EN_ATTENTE`` subscription for the caller's provider profile.

    A still-running pending subscription of the same type is returned as is,
    so repeated submissions never leave two pending rows that block each
    other's payment.
    """
    prestataire = (
        await db.execute(select(Prestataire).where(Prestataire.user_id == user.id))
    ).scalar_one_or_none()
    if prestataire is None:
        raise BadRequestError("Create a provider profile before subscribing")

    active = await db.execute(
        select(Abonnement.id)
        .where(Abonnement.prestataire_id == prestataire.id)
        .where(Abonnement.statut == StatutAbonnement.ACTIF)
    )
    if active.first() is not None:
        raise BadRequestError("You already have an active subscription")

    plan = None
    tarif = data.tarif
    if tarif is None:
        tarif = (
            settings.ABONNEMENT_PRIX_MENSUEL
            if data.type == TypeAbonnement.MENSUEL
            else settings.ABONNEMENT_PRIX_ANNUEL
        )
    if data.plan_id is not None:
        plan = await db.get(PlanAbonnement, data.plan_id)
        if plan is None or not plan.actif:
            raise NotFoundError("Plan", data.plan_id)
        if plan.type != data.type:
            raise BadRequestError("Plan type does not match the subscription type")
        tarif = plan.prix

    start = datetime.now(timezone.utc)
    pending = (
        await db.execute(
            select(Abonnement)
            .where(Abonnement.prestataire_id == prestataire.id)
            .where(Abonnement.type == data.type)
            .where(Abonnement.statut == StatutAbonnement.EN_ATTENTE)
            .where(Abonnement.date_fin > start)
            .options(selectinload(Abonnement.plan))
            .order_by(Abonnement.date_debut.desc(), Abonnement.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if pending is not None:
        logger.info("Pending abonnement %s reused for prestataire %s", pending.id, prestataire.id)
        return pending

    abonnement = Abonnement(
        prestataire_id=prestataire.id,
        plan_id=plan.id if plan else None,
        type=data.type,
        date_debut=start,
        date_fin=period_end(start, data.type),
        tarif=tarif,
        statut=StatutAbonnement.EN_ATTENTE,
    )
    db.add(abonnement)
    await db.flush()
    abonnement.plan = plan
    logger.info("Abonnement %s (%s) created for prestataire %s", abonnement.id, data.type.value, prestataire.id)
    return abonnement


async def get_my_abonnement(db: AsyncSession, user: User) -> AbonnementDetail | None:
    """Current active subscription with its 10 latest payments, or None."""
    prestataire_id = (
        await db.execute(select(Prestataire.id).where(Prestataire.user_id == user.id))
    ).scalar_one_or_none()
    if prestataire_id is None:
        return None

    q = (
        select(Abonnement)
        .where(Abonnement.prestataire_id == prestataire_id)
        .where(Abonnement.statut == StatutAbonnement.ACTIF)
        .options(selectinload(Abonnement.plan))
        .order_by(Abonnement.date_fin.desc())
        .limit(1)
        .execution_options(populate_existing=True)
    )
    abonnement = (await db.execute(q)).scalar_one_or_none()
    if abonnement is None:
        return None

    paiements = (
        await db.execute(
            select(Paiement)
            .where(Paiement.abonnement_id == abonnement.id)
            .order_by(Paiement.created_at.desc(), Paiement.id.desc())
            .limit(10)
        )
    ).scalars().all()
    detail = AbonnementDetail.model_validate(abonnement)
    detail.paiements = [PaiementResponse.model_validate(p) for p in paiements]
    return detail


async def activate_abonnement(db: AsyncSession, abonnement_id: int) -> Abonnement:
    """Mark a pending subscription active and make its provider visible."""
    abonnement = await db.get(Abonnement, abonnement_id)
    if abonnement is None:
        raise NotFoundError("Abonnement", abonnement_id)

    if abonnement.statut != StatutAbonnement.EN_ATTENTE:
        raise BadRequestError(f"Only pending subscriptions can be activated ({abonnement.statut.value})")

    abonnement.statut = StatutAbonnement.ACTIF
    prestataire = await db.get(Prestataire, abonnement.prestataire_id)
    prestataire.abonnement_actif = True
    await db.flush()
    await cache.invalidate_prestataire(prestataire.id)
    logger.info("Abonnement %s activated for prestataire %s", abonnement.id, prestataire.id)
    return abonnement


async def check_expirations(db: AsyncSession, now: datetime | None = None) -> int:
    """
    Expire every active subscription whose end date has passed.

    A provider loses visibility only when no other active subscription
    remains.  Returns the number of subscriptions expired.
    """
    now = now or datetime.now(timezone.utc)
    expired = (
        await db.execute(
            select(Abonnement)
            .where(Abonnement.statut == StatutAbonnement.ACTIF)
            .where(Abonnement.date_fin < now)
        )
    ).scalars().all()

    prestataire_ids = set()
    for abonnement in expired:
        abonnement.statut = StatutAbonnement.EXPIRE
        prestataire_ids.add(abonnement.prestataire_id)
    await db.flush()

    for prestataire_id in prestataire_ids:
        still_active = await db.execute(
            select(Abonnement.id)
            .where(Abonnement.prestataire_id == prestataire_id)
            .where(Abonnement.statut == StatutAbonnement.ACTIF)
        )
        if still_active.first() is None:
            prestataire = await db.get(Prestataire, prestataire_id)
            prestataire.abonnement_actif = False
        await cache.invalidate_prestataire(prestataire_id)
    await db.flush()

    if expired:
        logger.info("%d abonnement(s) expired", len(expired))
    return len(expired)
