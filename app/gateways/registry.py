from __future__ import annotations

from app.core.config import settings
from app.gateways.base import PaymentGateway
from app.gateways.mock import MockPaymentGateway
from app.gateways.paystack import PaystackGateway
from app.services.http_client import GatewayHttpClient

_gateway: PaymentGateway | None = None


def build_gateway() -> PaymentGateway:
    if settings.paystack_secret_key is None or not settings.paystack_secret_key.get_secret_value():
        return MockPaymentGateway()
    http = GatewayHttpClient(
        base_url=settings.paystack_base_url,
        bearer_token=settings.paystack_secret_key.get_secret_value(),
        timeout_seconds=settings.gateway_timeout_seconds,
    )
    return PaystackGateway(http=http)


def get_payment_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = build_gateway()
    return _gateway
