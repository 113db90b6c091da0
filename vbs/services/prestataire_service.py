"""
Prestataire service — provider profiles, availability and public search.

Public reads (search pages and the profile page) go through the Redis
cache-aside layer; cache keys encode every dimension that affects the
result.  Any write that changes what the public sees calls
``cache.invalidate_prestataire`` so stale listings are never served past
the write.
"""
import logging
import math

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from vbs.cache import cache
from vbs.config import settings
from vbs.exceptions import BadRequestError, ConflictError, NotFoundError
from vbs.models import (
    Avis,
    KycStatut,
    Prestataire,
    PrestataireService,
    Role,
    Service,
    SousSecteur,
    User,
)
from vbs.schemas import PaginatedResponse, PrestataireCreate, PrestataireDetail, PrestataireSummary

logger = logging.getLogger(__name__)

SORT_NOTE = "note"
SORT_RECENT = "recent"
SORT_DISTANCE = "distance"
SORT_OPTIONS = (SORT_NOTE, SORT_RECENT, SORT_DISTANCE)


async def get_by_user(db: AsyncSession, user: User) -> Prestataire:
    q = select(Prestataire).where(Prestataire.user_id == user.id)
    prestataire = (await db.execute(q)).scalar_one_or_none()
    if prestataire is None:
        raise NotFoundError("Prestataire profile")
    return prestataire


async def create_prestataire(db: AsyncSession, user: User, data: PrestataireCreate) -> Prestataire:
    """
    Create the provider profile of *user*.  KYC starts ``EN_ATTENTE`` and
    the profile stays invisible until KYC is validated and a subscription
    is active.
    """
    existing = await db.execute(select(Prestataire.id).where(Prestataire.user_id == user.id))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("A provider profile already exists for this account")

    service_ids = list(dict.fromkeys(data.service_ids))
    if service_ids:
        found = await db.execute(select(Service.id).where(Service.id.in_(service_ids)))
        missing = set(service_ids) - set(found.scalars().all())
        if missing:
            raise BadRequestError(f"Unknown service id(s): {sorted(missing)}")

    prestataire = Prestataire(
        user_id=user.id,
        raison_sociale=data.raison_sociale,
        description=data.description,
        logo_url=data.logo_url,
    )
    db.add(prestataire)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("A provider profile already exists for this account") from exc

    for service_id in service_ids:
        db.add(PrestataireService(prestataire_id=prestataire.id, service_id=service_id))

    if user.role == Role.USER:
        user.role = Role.PRESTATAIRE
    await db.flush()

    logger.info("Prestataire %s created for user %s", prestataire.id, user.id)
    return prestataire


async def get_my_prestataire(db: AsyncSession, user: User) -> Prestataire:
    q = (
        select(Prestataire)
        .where(Prestataire.user_id == user.id)
        .options(
            joinedload(Prestataire.user),
            selectinload(Prestataire.services).joinedload(PrestataireService.service),
        )
        .execution_options(populate_existing=True)
    )
    prestataire = (await db.execute(q)).unique().scalar_one_or_none()
    if prestataire is None:
        raise NotFoundError("Prestataire profile")
    return prestataire


async def update_disponibilite(db: AsyncSession, user: User, disponibilite: bool) -> Prestataire:
    prestataire = await get_by_user(db, user)
    prestataire.disponibilite = disponibilite
    await db.flush()
    await cache.invalidate_prestataire(prestataire.id)
    return prestataire


def _visible_filter(q):
    """Only providers the public may see."""
    return (
        q.join(User, User.id == Prestataire.user_id)
        .where(Prestataire.abonnement_actif.is_(True))
        .where(Prestataire.kyc_statut == KycStatut.VALIDE)
        .where(Prestataire.disponibilite.is_(True))
        .where(User.actif.is_(True))
    )


async def search_prestataires(
    db: AsyncSession,
    *,
    search: str | None = None,
    service_id: int | None = None,
    sous_secteur_id: int | None = None,
    secteur_id: int | None = None,
    tri: str = SORT_NOTE,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse:
    """
    Return a page of visible providers.

    ``distance`` ordering needs the caller position, which the geolocation
    layer provides; without it the ranking falls back to rating.
    """
    term = search.strip() if search else ""
    cache_key = (
        f"prestataires:search:{term.lower()}:{service_id}:{sous_secteur_id}:"
        f"{secteur_id}:{tri}:{page}:{page_size}"
    )
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    base = _visible_filter(select(Prestataire.id))
    if term:
        like = f"%{term}%"
        base = base.where(
            or_(
                Prestataire.raison_sociale.ilike(like),
                Prestataire.description.ilike(like),
                User.address.ilike(like),
            )
        )
    if service_id or sous_secteur_id or secteur_id:
        offered = (
            select(PrestataireService.prestataire_id)
            .join(Service, Service.id == PrestataireService.service_id)
            .join(SousSecteur, SousSecteur.id == Service.sous_secteur_id)
            .where(PrestataireService.actif.is_(True))
        )
        if service_id:
            offered = offered.where(Service.id == service_id)
        if sous_secteur_id:
            offered = offered.where(Service.sous_secteur_id == sous_secteur_id)
        if secteur_id:
            offered = offered.where(SousSecteur.secteur_id == secteur_id)
        base = base.where(Prestataire.id.in_(offered))

    total: int = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar_one()

    if tri == SORT_RECENT:
        order = (Prestataire.created_at.desc(), Prestataire.id.desc())
    else:
        order = (Prestataire.note_moyenne.desc(), Prestataire.nombre_avis.desc(), Prestataire.id)

    q = (
        select(Prestataire)
        .where(Prestataire.id.in_(base))
        .options(
            joinedload(Prestataire.user),
            selectinload(Prestataire.services).joinedload(PrestataireService.service),
        )
        .order_by(*order)
        .offset((page - 1) * page_size)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    rows = (await db.execute(q)).unique().scalars().all()

    response = PaginatedResponse(
        items=[PrestataireSummary.model_validate(p).model_dump(mode="json") for p in rows],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_prestataire(db: AsyncSession, prestataire_id: int) -> dict:
    """
    Public profile of a provider with an active account, its active
    services and its 10 most recent visible reviews.
    """
    cache_key = f"prestataires:detail:{prestataire_id}"
    cached = await cache.get(cache_key)
    if cached:
        return cached

    q = (
        select(Prestataire)
        .join(User, User.id == Prestataire.user_id)
        .where(Prestataire.id == prestataire_id)
        .where(User.actif.is_(True))
        .options(
            joinedload(Prestataire.user),
            selectinload(Prestataire.services).joinedload(PrestataireService.service),
        )
        .execution_options(populate_existing=True)
    )
    prestataire = (await db.execute(q)).unique().scalar_one_or_none()
    if prestataire is None:
        raise NotFoundError("Prestataire", prestataire_id)

    avis_q = (
        select(Avis)
        .where(Avis.prestataire_id == prestataire_id)
        .where(Avis.visible.is_(True))
        .order_by(Avis.created_at.desc(), Avis.id.desc())
        .limit(10)
    )
    avis = (await db.execute(avis_q)).scalars().all()

    data = PrestataireDetail.model_validate(prestataire).model_dump(mode="json")
    data["services"] = [s for s in data["services"] if s["actif"]]
    data["avis"] = [
        {
            "id": a.id,
            "commande_id": a.commande_id,
            "prestataire_id": a.prestataire_id,
            "utilisateur_id": a.utilisateur_id,
            "note": a.note,
            "commentaire": a.commentaire,
            "visible": a.visible,
            "created_at": a.created_at.isoformat(),
        }
        for a in avis
    ]
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data
