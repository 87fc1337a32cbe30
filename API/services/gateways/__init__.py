"""
Payment gateway adapters.

Usage:
    from services.gateways import GatewayRegistry, build_gateways

    gateways = build_gateways(settings)
    gateway = gateways.for_method(student.method)
    result = gateway.request_invoice(student, charges, amount, plan_code)
"""

from .base import (
    PaymentGateway,
    GatewayInvoice,
    InvoiceSettled,
    CustomerPaid,
    GatewayRegistry,
)
from .stripe_gateway import StripeGateway
from .btcpay_gateway import BTCPayGateway


def build_gateways(settings, prices=None) -> GatewayRegistry:
    """Build both gateways from application settings."""
    from core.pricing import GatewayPriceTable

    prices = prices or GatewayPriceTable.from_settings(settings.stripe_prices)
    return GatewayRegistry([
        StripeGateway(
            api_key=settings.stripe_api_key,
            prices=prices,
            checkout_domain=settings.checkout_domain,
        ),
        BTCPayGateway(
            base_url=settings.btcpay_url,
            store_id=settings.btcpay_store_id,
            api_key=settings.btcpay_api_key,
            currency=settings.btcpay_currency,
        ),
    ])


__all__ = [
    'PaymentGateway',
    'GatewayInvoice',
    'InvoiceSettled',
    'CustomerPaid',
    'GatewayRegistry',
    'StripeGateway',
    'BTCPayGateway',
    'build_gateways',
]
