"""
Gateway capability and the canonical inbound events.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from core.errors import ValidationError
from database.models import PaymentMethod, Student


@dataclass(frozen=True)
class GatewayInvoice:
    """Hosted checkout opened by a gateway."""
    url: str
    external_id: str


@dataclass(frozen=True)
class InvoiceSettled:
    """The gateway settled one of our invoices, identified by its gateway id."""
    external_id: str
    clearing_data: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class CustomerPaid:
    """A gateway customer paid an amount; the invoice is matched by amount."""
    customer_id: str
    amount: Decimal
    external_ref: str
    clearing_data: Dict = field(default_factory=dict)


class PaymentGateway(ABC):
    method: PaymentMethod

    @abstractmethod
    def request_invoice(
        self, student: Student, charges: List, amount: Decimal, plan_code: str,
    ) -> GatewayInvoice:
        """Open a hosted checkout. Raises GatewayError on failure."""

    @abstractmethod
    def translate_event(self, payload: dict) -> Optional[object]:
        """
        Turn a verified webhook payload into InvoiceSettled / CustomerPaid,
        or None when the event is not a settlement.
        """


class GatewayRegistry:
    """Gateways keyed by payment method."""

    def __init__(self, gateways: Iterable[PaymentGateway]):
        self._by_method = {PaymentMethod(g.method): g for g in gateways}

    def for_method(self, method) -> PaymentGateway:
        gateway = self._by_method.get(PaymentMethod(method))
        if gateway is None:
            raise ValidationError(f"No gateway configured for {method}")
        return gateway

    def __iter__(self):
        return iter(self._by_method.values())
