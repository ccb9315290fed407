from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Literal

import httpx

log = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST"]


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None
    # True when the request may or may not have reached the remote side
    outcome_unknown: bool = False

    elapsed_ms: int | None = None


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


def _transport_failure(code: str, message: str) -> HttpResult:
    return HttpResult(
        ok=False,
        status_code=None,
        detail={"error": code.lower()},
        error_code=code,
        error_message=message,
        outcome_unknown=True,
    )


class GatewayHttpClient:
    """
    JSON client bound to one payment provider API.

    - One pooled AsyncClient carrying the provider base URL and bearer token.
    - Never retries: settlement is re-checked through an idempotent verify call.
    - Transport problems come back as results with outcome_unknown set,
      never as exceptions.
    """

    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: str,
        timeout_seconds: float = 15.0,
        max_response_body_chars: int = 20_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {bearer_token}", "Accept": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request_json(
        self,
        *,
        method: HttpMethod,
        path: str,
        params: Mapping[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> HttpResult:
        started = time.monotonic()
        try:
            resp = await self._client.request(method, path, params=dict(params or {}), json=json_body)
        except httpx.TimeoutException as e:
            log.warning("gateway %s %s timed out", method, path)
            return _transport_failure("TIMEOUT", str(e) or "timeout")
        except httpx.RequestError as e:
            log.warning("gateway %s %s failed: %s", method, path, type(e).__name__)
            return _transport_failure("REQUEST_ERROR", str(e) or type(e).__name__)

        try:
            parsed = resp.json()
            detail = parsed if isinstance(parsed, dict) else {"data": parsed}
        except ValueError:
            detail = {
                "raw": _cap_text(resp.text, max_chars=self._max_body),
                "content_type": resp.headers.get("content-type"),
            }

        elapsed_ms = int((time.monotonic() - started) * 1000)

        if resp.is_success:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail, elapsed_ms=elapsed_ms)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=str(detail.get("message") or f"HTTP {resp.status_code}"),
            # 5xx: the remote may have processed the request
            outcome_unknown=resp.status_code >= 500,
            elapsed_ms=elapsed_ms,
        )

    async def get_json(self, path: str, *, params: Mapping[str, str] | None = None) -> HttpResult:
        return await self.request_json(method="GET", path=path, params=params)

    async def post_json(self, path: str, *, json_body: dict[str, Any] | None = None) -> HttpResult:
        return await self.request_json(method="POST", path=path, json_body=json_body)
