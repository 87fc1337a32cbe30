"""
Payment service: record money received and reconcile it.

Entry points: BTCPay webhook, Stripe webhook, admin settlement of an
invoice. Each one locks the student, records the payment (linking the
invoice in the same transaction), retires unpaid charges and commits.
Webhook events that match nothing are ignored, and a redelivered event
is a no-op.
"""

import logging
from decimal import Decimal
from typing import Optional

from core.errors import NotFoundError
from core.pricing import ChargeKind
from database.models import Invoice, Payment, PaymentMethod, Student
from services.base import StudentServiceBase
from services.billing import BillingSummary
from services.ledger import LedgerService

logger = logging.getLogger(__name__)


class PaymentService(StudentServiceBase):
    def __init__(self, db, gateways, onboarding=None):
        super().__init__(db)
        self.gateways = gateways
        self.onboarding = onboarding
        self.ledger = LedgerService(db)

    # ==================== WEBHOOKS ====================

    def from_btcpay_webhook(self, payload: dict) -> Optional[Payment]:
        """Settle the invoice BTCPay reports as settled (payload already verified)."""
        event = self.gateways.for_method(PaymentMethod.btcpay).translate_event(payload)
        if event is None:
            logger.debug(f"BTCPay event {payload.get('type')} ignored")
            return None

        invoice = self.ledger.invoice_by_external_id(event.external_id, PaymentMethod.btcpay)
        if invoice is None:
            logger.warning(f"BTCPay invoice {event.external_id} not found, ignoring")
            return None

        student = self._lock_student(invoice.student_id)
        self.db.refresh(invoice)
        if invoice.payment_id is not None:
            logger.info(f"BTCPay invoice {event.external_id} already settled, ignoring redelivery")
            self._rollback()
            return None

        return self._record(
            student,
            amount=invoice.amount,
            payment_method=PaymentMethod.btcpay,
            clearing_data=event.clearing_data,
            invoice=invoice,
            external_ref=event.external_id,
        )

    def from_stripe_event(self, payload: dict) -> Optional[Payment]:
        """
        Record a Stripe invoice payment (payload already verified).

        The customer id gives the student; the open Stripe invoice with
        exactly the paid amount is linked when there is one.
        """
        event = self.gateways.for_method(PaymentMethod.stripe).translate_event(payload)
        if event is None:
            logger.debug(f"Stripe event {payload.get('type')} ignored")
            return None

        found = self.db.query(Student).filter(
            Student.stripe_customer_id == event.customer_id
        ).first()
        if found is None:
            logger.warning(f"Stripe customer {event.customer_id} has no student, ignoring")
            return None

        student = self._lock_student(found.id)
        if self.ledger.payment_by_external_ref(PaymentMethod.stripe, event.external_ref):
            logger.info(f"Stripe payment {event.external_ref} already recorded, ignoring redelivery")
            self._rollback()
            return None

        invoice = self.ledger.find_open_invoice(
            student_id=student.id,
            amount=event.amount,
            payment_method=PaymentMethod.stripe,
        )
        if invoice is None:
            logger.warning(f"Stripe payment {event.external_ref} ({event.amount}) matches no open invoice")

        return self._record(
            student,
            amount=event.amount,
            payment_method=PaymentMethod.stripe,
            clearing_data=event.clearing_data,
            invoice=invoice,
            external_ref=event.external_ref,
        )

    # ==================== ADMIN ====================

    def from_invoice(self, invoice_id: int, admin: str = None) -> Optional[Payment]:
        """Manually settle an invoice. Returns None if it was already settled."""
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id).first()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        student = self._lock_student(invoice.student_id)
        self.db.refresh(invoice)
        if invoice.payment_id is not None:
            logger.info(f"Invoice {invoice_id} already settled by payment {invoice.payment_id}")
            self._rollback()
            return None

        return self._record(
            student,
            amount=invoice.amount,
            payment_method=PaymentMethod(invoice.payment_method),
            clearing_data={"source": "admin", "admin": admin, "invoice_id": invoice.id},
            invoice=invoice,
        )

    # ==================== HELPERS ====================

    def _record(
        self, student: Student, amount: Decimal, payment_method: PaymentMethod,
        clearing_data: dict, invoice: Invoice = None, external_ref: str = None,
    ) -> Optional[Payment]:
        try:
            payment = self.ledger.create_payment(
                student, amount, Decimal("0"), payment_method,
                clearing_data=clearing_data, invoice=invoice, external_ref=external_ref,
            )
            if payment is None:
                self._rollback()
                return None

            summary = BillingSummary.build(self.db, student, self.gateways, self.onboarding)
            retired = summary.sync_paid_status()
        except Exception:
            self._rollback()
            raise

        self._commit()

        if self.onboarding and any(c.kind == ChargeKind.SUBSCRIPTION for c in retired):
            self.onboarding.complete(self.db, student)

        return payment
