from dataclasses import dataclass
from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.security import hash_api_key
from app.models.api_key import ApiKey

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


@dataclass(frozen=True)
class Actor:
    api_key_id: str
    user_id: str


async def _resolve_actor(db: AsyncSession, api_key: str) -> Actor | None:
    hashed = hash_api_key(api_key)
    stmt = select(ApiKey).where(ApiKey.key_hash == hashed, ApiKey.is_active.is_(True))
    row = (await db.execute(stmt)).scalar_one_or_none()
    if not row:
        return None
    return Actor(api_key_id=row.id, user_id=row.user_id)


async def get_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    actor = await _resolve_actor(db, api_key)
    if not actor:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return actor


async def get_optional_actor(
    api_key: str | None = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> Actor | None:
    # public reads: anonymous callers allowed, a bad key is still rejected
    if not api_key:
        return None
    actor = await _resolve_actor(db, api_key)
    if not actor:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return actor
