"""
Avis service — reviews on completed orders and provider rating aggregation.

Design notes
------------
- A review is accepted only for an existing order, owned by the caller,
  in status ``TERMINEE``, that has no review yet.  Every check runs before
  the first write, so a rejected request leaves the database untouched.
- The provider row is locked (``SELECT ... FOR UPDATE``) before the
  checks.  Two concurrent reviews for the same provider therefore execute
  one after the other, and the aggregate recomputation always sees every
  committed review.  SQLite ignores the clause, which is fine for tests.
- ``note_moyenne`` and ``nombre_avis`` are recomputed from a single
  ``COUNT``/``SUM`` over visible reviews rather than incremented, so
  moderation (hiding a review) converges to the same values.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from vbs.cache import cache
from vbs.exceptions import BadRequestError, ForbiddenError, NotFoundError
from vbs.models import AdminAction, Avis, Commande, Prestataire, StatutCommande, User
from vbs.schemas import AvisCreate

logger = logging.getLogger(__name__)

_ONE_DECIMAL = Decimal("0.1")


def mean_rating(total: int, count: int) -> float:
    """
    Arithmetic mean of *count* ratings summing to *total*, rounded half-up
    to one decimal place.  ``0.0`` when there is nothing to average.
    """
    if count == 0:
        return 0.0
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


async def _lock_prestataire(db: AsyncSession, prestataire_id: int) -> Prestataire | None:
    q = select(Prestataire).where(Prestataire.id == prestataire_id).with_for_update()
    return (await db.execute(q)).scalar_one_or_none()


async def recompute_prestataire_rating(db: AsyncSession, prestataire_id: int) -> Prestataire:
    """
    Recompute and store the provider's average rating and review count
    from its currently visible reviews.

    The caller must already hold the provider row lock (see
    ``_lock_prestataire``) when running concurrently with other writers.
    """
    prestataire = await db.get(Prestataire, prestataire_id)
    if prestataire is None:
        raise NotFoundError("Prestataire", prestataire_id)

    await db.flush()
    q = (
        select(func.count(Avis.id), func.coalesce(func.sum(Avis.note), 0))
        .where(Avis.prestataire_id == prestataire_id)
        .where(Avis.visible.is_(True))
    )
    count, total = (await db.execute(q)).one()

    prestataire.note_moyenne = mean_rating(int(total), int(count))
    prestataire.nombre_avis = int(count)
    await db.flush()

    logger.info(
        "Prestataire %s rating recomputed: %.1f over %d review(s)",
        prestataire_id, prestataire.note_moyenne, prestataire.nombre_avis,
    )
    return prestataire


async def create_avis(db: AsyncSession, user: User, data: AvisCreate) -> Avis:
    """
    Record a review on a completed order and refresh the provider rating.

    Raises NotFoundError when the order does not exist, ForbiddenError when
    it belongs to someone else, BadRequestError when it is not completed or
    already reviewed.
    """
    commande = await db.get(Commande, data.commande_id)
    if commande is None:
        raise NotFoundError("Commande", data.commande_id)

    # Serialise every review of this provider behind the row lock, then
    # re-read the order state under it.
    await _lock_prestataire(db, commande.prestataire_id)
    await db.refresh(commande)

    if commande.utilisateur_id != user.id:
        raise ForbiddenError("This order does not belong to you")
    if commande.statut != StatutCommande.TERMINEE:
        raise BadRequestError("Only completed orders can be reviewed")

    existing = await db.execute(select(Avis.id).where(Avis.commande_id == commande.id))
    if existing.scalar_one_or_none() is not None:
        raise BadRequestError("This order has already been reviewed")

    avis = Avis(
        commande_id=commande.id,
        prestataire_id=commande.prestataire_id,
        utilisateur_id=user.id,
        note=data.note,
        commentaire=data.commentaire,
    )
    db.add(avis)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost a race on the unique commande_id constraint.
        raise BadRequestError("This order has already been reviewed") from exc

    await recompute_prestataire_rating(db, commande.prestataire_id)
    await cache.invalidate_prestataire(commande.prestataire_id)

    logger.info(
        "Avis %s created on commande %s (note=%d) by user %s",
        avis.id, commande.id, avis.note, user.id,
    )
    return avis


async def list_avis_for_prestataire(db: AsyncSession, prestataire_id: int) -> list[Avis]:
    """Visible reviews of a provider, newest first."""
    q = (
        select(Avis)
        .where(Avis.prestataire_id == prestataire_id)
        .where(Avis.visible.is_(True))
        .order_by(Avis.created_at.desc(), Avis.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


async def get_avis_for_commande(db: AsyncSession, commande_id: int) -> Avis:
    avis = (
        await db.execute(select(Avis).where(Avis.commande_id == commande_id))
    ).scalar_one_or_none()
    if avis is None:
        raise NotFoundError("Avis for commande", commande_id)
    return avis


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------

async def list_avis_for_moderation(db: AsyncSession, visible: bool | None = None) -> list[dict]:
    """
    Every review across all providers, newest first, with the provider
    name attached.

    One query covers all providers, so the listing is either complete or
    the request fails as a whole; there is no partial result to flag.
    """
    q = select(Avis).options(joinedload(Avis.prestataire)).order_by(
        Avis.created_at.desc(), Avis.id.desc()
    )
    if visible is not None:
        q = q.where(Avis.visible.is_(visible))
    rows = (await db.execute(q.execution_options(populate_existing=True))).scalars().all()
    return [
        {
            "id": a.id,
            "commande_id": a.commande_id,
            "prestataire_id": a.prestataire_id,
            "utilisateur_id": a.utilisateur_id,
            "note": a.note,
            "commentaire": a.commentaire,
            "visible": a.visible,
            "created_at": a.created_at,
            "prestataire_raison_sociale": a.prestataire.raison_sociale if a.prestataire else None,
        }
        for a in rows
    ]


async def set_avis_visibility(
    db: AsyncSession,
    avis_id: int,
    visible: bool,
    admin: User,
    motif: str | None = None,
) -> Avis:
    """Show or hide a review and bring the provider rating back in line."""
    avis = await db.get(Avis, avis_id)
    if avis is None:
        raise NotFoundError("Avis", avis_id)

    await _lock_prestataire(db, avis.prestataire_id)
    avis.visible = visible
    await db.flush()
    await recompute_prestataire_rating(db, avis.prestataire_id)

    action = "AVIS_AFFICHE" if visible else "AVIS_MASQUE"
    db.add(AdminAction(admin_id=admin.id, type=action, cible_id=avis.id, meta={"motif": motif}))
    await db.flush()
    await cache.invalidate_prestataire(avis.prestataire_id)

    logger.info("Avis %s set visible=%s by admin %s", avis.id, visible, admin.id)
    return avis
