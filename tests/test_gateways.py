import json

import httpx
import pytest

from app.gateways.mock import MockPaymentGateway
from app.gateways.paystack import PaystackGateway
from app.services.http_client import GatewayHttpClient


def _paystack(handler) -> PaystackGateway:
    http = GatewayHttpClient(
        base_url="https://api.paystack.test",
        bearer_token="sk_test_123",
        timeout_seconds=2,
        transport=httpx.MockTransport(handler),
    )
    return PaystackGateway(http=http)


@pytest.mark.asyncio
async def test_paystack_initialize_sends_minor_units_and_returns_redirect():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status": True,
            "data": {"authorization_url": "https://checkout.test/abc", "access_code": "abc", "reference": "AMV_1_X"},
        })

    res = await _paystack(handler).initialize(
        email="winner@test.com",
        amount_minor=550000,
        reference="AMV_1_X",
        callback_url="http://app.test/pay/callback",
        metadata={"listing_id": "lst_1"},
    )
    assert res.ok
    assert res.redirect_url == "https://checkout.test/abc"
    assert seen["url"] == "https://api.paystack.test/transaction/initialize"
    assert seen["auth"] == "Bearer sk_test_123"
    assert seen["body"]["amount"] == 550000
    assert seen["body"]["reference"] == "AMV_1_X"


@pytest.mark.asyncio
async def test_paystack_verify_success_and_failure():
    answers = {
        "AMV_OK": {"status": True, "data": {"status": "success", "amount": 550000, "paid_at": "2026-01-02T10:00:00.000Z"}},
        "AMV_NO": {"status": True, "data": {"status": "abandoned", "gateway_response": "Abandoned"}},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        reference = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json=answers[reference])

    gateway = _paystack(handler)

    ok = await gateway.verify(reference="AMV_OK")
    assert ok.outcome == "success"
    assert ok.amount_minor == 550000
    assert ok.paid_at is not None and ok.paid_at.year == 2026

    failed = await gateway.verify(reference="AMV_NO")
    assert failed.outcome == "failed"
    assert failed.error_message == "Abandoned"


@pytest.mark.asyncio
async def test_paystack_timeout_and_5xx_are_unknown_outcomes():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "unavailable"})

    assert (await _paystack(timeout).verify(reference="AMV_1")).outcome == "unknown"
    assert (await _paystack(server_error).verify(reference="AMV_1")).outcome == "unknown"


@pytest.mark.asyncio
async def test_paystack_4xx_is_a_definite_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})

    res = await _paystack(handler).verify(reference="AMV_missing")
    assert res.outcome == "failed"
    assert res.error_code == "HTTP_400"


@pytest.mark.asyncio
async def test_mock_gateway_settles_what_it_initialized():
    gateway = MockPaymentGateway()
    init = await gateway.initialize(
        email="w@test.com", amount_minor=120000, reference="AMV_9", callback_url="http://app.test/pay/callback", metadata={}
    )
    assert init.redirect_url == "http://app.test/pay/callback?reference=AMV_9"

    res = await gateway.verify(reference="AMV_9")
    assert res.outcome == "success"
    assert res.amount_minor == 120000


@pytest.mark.asyncio
async def test_http_client_reports_timing_for_unread_mock_responses():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": True})

    http = GatewayHttpClient(base_url="https://api.paystack.test/", bearer_token="sk", transport=httpx.MockTransport(handler))
    try:
        res = await http.get_json("/bank")
    finally:
        await http.aclose()

    assert res.ok
    assert res.detail == {"status": True}
    assert isinstance(res.elapsed_ms, int) and res.elapsed_ms >= 0
