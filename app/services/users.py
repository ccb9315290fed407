from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict
from app.core.security import generate_api_key
from app.models.api_key import ApiKey
from app.models.user import User
from app.schemas.me import ProfileUpdate, UserBootstrap
from app.services.auth import Actor
from app.services.listings import get_user_or_404

log = logging.getLogger(__name__)


async def bootstrap_user(db: AsyncSession, payload: UserBootstrap) -> tuple[User, str]:
    """Create a user with one API key. The plain key is returned once and never stored."""
    email = payload.email.strip().lower()
    taken = (await db.execute(select(User.id).where(User.email == email))).scalar_one_or_none()
    if taken is not None:
        raise Conflict("Email already registered")

    user = User(
        email=email,
        display_name=payload.display_name.strip(),
        phone=payload.phone,
        instagram=payload.instagram,
        twitter=payload.twitter,
    )
    db.add(user)
    await db.flush()

    key = generate_api_key()
    db.add(ApiKey(user_id=user.id, key_prefix=key.prefix, key_hash=key.hashed, is_active=True))
    await db.flush()

    log.info("user bootstrapped: %s", user.id)
    return user, key.plain


async def update_profile(db: AsyncSession, *, actor: Actor, payload: ProfileUpdate) -> User:
    user = await get_user_or_404(db, actor.user_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "display_name" and value is None:
            continue
        setattr(user, field, value)
    await db.flush()
    return user
