"""
BTCPay Server adapter (crypto, lump-sum invoice).

The invoice is opened for the whole amount in a fixed currency;
line items are not sent.
"""

import logging
from decimal import Decimal
from typing import List, Optional

import httpx

from core.errors import GatewayError
from database.models import PaymentMethod, Student
from .base import PaymentGateway, GatewayInvoice, InvoiceSettled

logger = logging.getLogger(__name__)

INVOICE_SETTLED = "InvoiceSettled"


class BTCPayGateway(PaymentGateway):
    method = PaymentMethod.btcpay

    def __init__(
        self, base_url: str, store_id: str, api_key: str,
        currency: str = "EUR", transport: httpx.BaseTransport = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store_id = store_id
        self.api_key = api_key
        self.currency = currency
        self.timeout = 30.0
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"token {self.api_key}"},
        )

    def request_invoice(
        self, student: Student, charges: List, amount: Decimal, plan_code: str,
    ) -> GatewayInvoice:
        payload = {
            "amount": str(amount),
            "currency": self.currency,
            "metadata": {"studentId": student.id, "buyerEmail": student.email},
        }
        try:
            with self._client() as client:
                resp = client.post(f"/api/v1/stores/{self.store_id}/invoices", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"BTCPay invoice failed for student {student.id}: HTTP {e.response.status_code}")
            raise GatewayError("btcpay", f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"BTCPay invoice failed for student {student.id}: {e}")
            raise GatewayError("btcpay", str(e)) from e

        if not data.get("id") or not data.get("checkoutLink"):
            raise GatewayError("btcpay", "Response is missing id or checkoutLink")

        logger.info(f"BTCPay invoice {data['id']} for student {student.id}: {amount} {self.currency}")
        return GatewayInvoice(url=data["checkoutLink"], external_id=data["id"])

    def translate_event(self, payload: dict) -> Optional[InvoiceSettled]:
        if payload.get("type") != INVOICE_SETTLED or not payload.get("invoiceId"):
            return None
        return InvoiceSettled(external_id=payload["invoiceId"], clearing_data=payload)
