from __future__ import annotations

from typing import Any

from app.core.clock import utcnow
from app.gateways.base import InitializeResult, VerifyResult


class MockPaymentGateway:
    """
    Development gateway used when no provider secret is configured. Redirects
    straight to the app callback and settles every initialized reference for
    the amount it was initialized with.
    """

    name = "mock"

    def __init__(self):
        self._amounts: dict[str, int] = {}

    async def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
    ) -> InitializeResult:
        self._amounts[reference] = amount_minor
        return InitializeResult(
            ok=True,
            redirect_url=f"{callback_url}?reference={reference}",
            access_code=f"mock_{reference}",
            reference=reference,
        )

    async def verify(self, *, reference: str) -> VerifyResult:
        # references initialized by another process are trusted as-is
        return VerifyResult(outcome="success", amount_minor=self._amounts.get(reference), paid_at=utcnow())
