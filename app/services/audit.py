from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog

log = logging.getLogger(__name__)


async def audit(
    db: AsyncSession,
    *,
    actor_user_id: str | None,
    action: str,
    target_type: str | None = None,
    target_id: str | None = None,
    detail: dict | None = None,
) -> None:
    """
    Fire-and-forget audit record.

    Call after the primary transaction has committed: the row is written in its
    own short transaction and a failure here is logged and discarded.
    """
    try:
        db.add(AuditLog(
            actor_user_id=actor_user_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            detail=detail or {},
        ))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("audit write failed: action=%s target=%s:%s", action, target_type, target_id)
