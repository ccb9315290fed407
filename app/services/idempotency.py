import hashlib
import json
from fastapi import Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict
from app.models.idempotency import IdempotencyKey
from app.services.auth import Actor


def _hash_request(path: str, body: dict) -> str:
    # Stable hash to detect conflicts (same idempotency key but different request)
    raw = json.dumps({"path": path, "body": body}, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return "sha256:" + hashlib.sha256(raw).hexdigest()


async def require_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str:
    if not idempotency_key:
        raise HTTPException(status_code=400, detail="Missing Idempotency-Key header")
    if len(idempotency_key) > 200:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long")
    return idempotency_key


async def find_idempotent_response(
    *,
    db: AsyncSession,
    actor: Actor,
    idempotency_key: str,
    request_path: str,
    request_body: dict,
) -> dict | None:
    """
    Returns the stored response for a retried request, or None for a new key.
    Raises Conflict when the key was used for a different request.
    """
    req_hash = _hash_request(request_path, request_body)

    stmt = select(IdempotencyKey).where(
        IdempotencyKey.user_id == actor.user_id,
        IdempotencyKey.key == idempotency_key,
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if not existing:
        return None
    if existing.request_hash != req_hash:
        raise Conflict("Idempotency-Key reuse with different request")
    return existing.response


def store_idempotency_response(
    *,
    db: AsyncSession,
    actor: Actor,
    idempotency_key: str,
    request_path: str,
    request_body: dict,
    response: dict,
) -> None:
    # Added to the caller's transaction; the unique constraint rejects a racing duplicate.
    db.add(IdempotencyKey(
        user_id=actor.user_id,
        key=idempotency_key,
        request_hash=_hash_request(request_path, request_body),
        response=response,
    ))
