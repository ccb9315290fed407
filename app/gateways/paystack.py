from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from app.gateways.base import InitializeResult, VerifyResult
from app.services.http_client import GatewayHttpClient

log = logging.getLogger(__name__)


def _parse_paid_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class PaystackGateway:
    name = "paystack"

    def __init__(self, *, http: GatewayHttpClient):
        self._http = http

    async def initialize(
        self,
        *,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: str,
        metadata: dict[str, Any],
    ) -> InitializeResult:
        res = await self._http.post_json(
            "/transaction/initialize",
            json_body={
                "email": email,
                "amount": amount_minor,
                "reference": reference,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )
        body = res.detail
        if not res.ok or not body.get("status"):
            log.warning("paystack initialize failed: reference=%s code=%s", reference, res.error_code)
            return InitializeResult(
                ok=False,
                error_code=res.error_code or "INIT_REJECTED",
                error_message=res.error_message or str(body.get("message") or "Failed to initialize payment"),
            )

        data = body.get("data") or {}
        return InitializeResult(
            ok=True,
            redirect_url=data.get("authorization_url"),
            access_code=data.get("access_code"),
            reference=data.get("reference") or reference,
        )

    async def verify(self, *, reference: str) -> VerifyResult:
        res = await self._http.get_json(f"/transaction/verify/{reference}")
        if not res.ok:
            if res.outcome_unknown:
                log.warning("paystack verify outcome unknown: reference=%s code=%s", reference, res.error_code)
                return VerifyResult(outcome="unknown", error_code=res.error_code, error_message=res.error_message)
            return VerifyResult(
                outcome="failed",
                error_code=res.error_code,
                error_message=res.error_message,
                detail=res.detail,
            )

        body = res.detail
        data = body.get("data") or {}
        if not body.get("status") or data.get("status") != "success":
            return VerifyResult(
                outcome="failed",
                error_code="NOT_SUCCESSFUL",
                error_message=str(data.get("gateway_response") or body.get("message") or "Payment not successful"),
                detail={"status": data.get("status")},
            )

        return VerifyResult(
            outcome="success",
            amount_minor=data.get("amount"),
            paid_at=_parse_paid_at(data.get("paid_at")),
            detail={"channel": data.get("channel"), "currency": data.get("currency")},
        )
