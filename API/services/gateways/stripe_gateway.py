"""
Stripe adapter (card, subscription-style checkout).

Each unpaid charge becomes one line item priced with the Stripe price
id for the student's plan region.
"""

import logging
from decimal import Decimal
from typing import List, Optional

import stripe

from core.errors import GatewayError, InconsistentPriceError
from core.pricing import GatewayPriceTable, PricingCatalog
from database.models import PaymentMethod, Student
from .base import PaymentGateway, GatewayInvoice, CustomerPaid

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "invoice.payment_succeeded"


class StripeGateway(PaymentGateway):
    method = PaymentMethod.stripe

    def __init__(self, api_key: str, prices: GatewayPriceTable, checkout_domain: str):
        self.api_key = api_key
        self.prices = prices
        self.checkout_domain = checkout_domain.rstrip("/")

    # ==================== CUSTOMERS ====================

    def get_or_create_customer(self, student: Student) -> str:
        """Stripe customer id for the student, created on first use."""
        if student.stripe_customer_id:
            return student.stripe_customer_id

        try:
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=student.email,
                name=student.full_name,
                metadata={"student_id": str(student.id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe customer creation failed for student {student.id}: {e}")
            raise GatewayError("stripe", str(e)) from e

        student.stripe_customer_id = customer.id
        logger.info(f"Stripe customer {customer.id} created for student {student.id}")
        return customer.id

    # ==================== CHECKOUT ====================

    def request_invoice(
        self, student: Student, charges: List, amount: Decimal, plan_code: str,
    ) -> GatewayInvoice:
        customer_id = self.get_or_create_customer(student)
        line_items = [
            {"price": charge.gateway_price_ref(self.prices, plan_code), "quantity": 1}
            for charge in charges
        ]
        if not line_items:
            raise GatewayError("stripe", "Checkout needs at least one line item")

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=line_items,
                success_url=f"{self.checkout_domain}/payments/success",
                cancel_url=f"{self.checkout_domain}/payments/canceled",
                metadata={"student_id": str(student.id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout failed for student {student.id}: {e}")
            raise GatewayError("stripe", str(e)) from e

        logger.info(f"Stripe checkout {session.id} for student {student.id}: {len(line_items)} item(s), {amount}")
        return GatewayInvoice(url=session.url, external_id=session.id)

    # ==================== WEBHOOKS ====================

    def translate_event(self, payload: dict) -> Optional[CustomerPaid]:
        if payload.get("type") != PAYMENT_SUCCEEDED:
            return None

        invoice = (payload.get("data") or {}).get("object") or {}
        if not (invoice.get("paid") is True or invoice.get("status") == "paid"):
            return None

        customer_id = invoice.get("customer")
        if not customer_id:
            return None

        return CustomerPaid(
            customer_id=customer_id,
            amount=Decimal(int(invoice.get("amount_paid") or 0)) / 100,
            external_ref=invoice.get("id") or payload.get("id"),
            clearing_data=payload,
        )

    # ==================== STARTUP CHECK ====================

    def validate_prices(self, catalog: PricingCatalog):
        """
        Retrieve every configured price and compare it with the catalog.
        Raises InconsistentPriceError on the first mismatch.
        """
        for plan_code, kind, price_id in self.prices.items():
            if not price_id:
                raise InconsistentPriceError(f"{plan_code.value}_{kind.value}", "not configured")
            try:
                price = stripe.Price.retrieve(price_id, api_key=self.api_key)
            except stripe.StripeError as e:
                raise InconsistentPriceError(price_id, str(e)) from e

            expected = catalog.by_code(plan_code).price_for(kind)
            actual = Decimal(int(price.unit_amount or 0)) / 100
            if actual != expected:
                raise InconsistentPriceError(price_id, f"Stripe has {actual}, catalog has {expected}")

        logger.info("✅ Stripe prices match the catalog")
