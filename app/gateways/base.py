from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol, runtime_checkable


VerifyOutcome = Literal["success", "failed", "unknown"]


@dataclass(frozen=True)
class InitializeResult:
    ok: bool
    redirect_url: str | None = None
    access_code: str | None = None
    reference: str | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class VerifyResult:
    # "unknown": timeout / transport error, the payment must stay INITIATED
    outcome: VerifyOutcome
    amount_minor: int | None = None
    paid_at: datetime | None = None
    error_code: str | None = None
    error_message: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Out-of-process payment provider. Amounts cross this boundary in minor
    units (x100 of the listing currency unit).
    """

    name: str

    async def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
    ) -> InitializeResult:
        ...

    async def verify(self, *, reference: str) -> VerifyResult:
        ...


def to_minor_units(amount: int) -> int:
    return amount * 100
