"""
User service — the caller's own account, plus the admin user directory.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vbs.cache import cache
from vbs.exceptions import ConflictError, NotFoundError
from vbs.models import Prestataire, Role, User
from vbs.schemas import UserUpdate

logger = logging.getLogger(__name__)


async def update_me(db: AsyncSession, user: User, data: UserUpdate) -> User:
    """Only fields explicitly present in the payload are modified."""
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError("This email is already used by another account") from exc
    return user


async def list_users(
    db: AsyncSession, role: Role | None = None, search: str | None = None
) -> list[User]:
    q = select(User).options(selectinload(User.prestataire)).order_by(User.created_at.desc(), User.id.desc())
    if role is not None:
        q = q.where(User.role == role)
    if search:
        like = f"%{search.strip()}%"
        q = q.where(or_(User.email.ilike(like), User.phone.ilike(like), User.address.ilike(like)))
    result = await db.execute(q.execution_options(populate_existing=True))
    return list(result.scalars().all())


async def set_user_active(db: AsyncSession, user_id: int, actif: bool) -> User:
    """Enable or disable an account; a disabled provider drops out of public listings."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    user.actif = actif
    await db.flush()

    prestataire_id = (
        await db.execute(select(Prestataire.id).where(Prestataire.user_id == user.id))
    ).scalar_one_or_none()
    if prestataire_id is not None:
        await cache.invalidate_prestataire(prestataire_id)
    logger.info("User %s actif=%s", user.id, actif)
    return user
