"""
Ledger service: persist invoices and payments.

Nothing here commits: callers own the transaction, so a payment and
its invoice link are always written together.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from database.models import Invoice, Payment, PaymentMethod, Student

logger = logging.getLogger(__name__)


class LedgerService:
    def __init__(self, db: Session):
        self.db = db

    # ==================== INVOICES ====================

    def create_invoice(
        self, student: Student, amount: Decimal, payment_method: PaymentMethod,
        description: str, url: str, external_id: str,
    ) -> Invoice:
        invoice = Invoice(
            student_id=student.id,
            amount=Decimal(str(amount)),
            payment_method=PaymentMethod(payment_method).value,
            description=description,
            url=url,
            external_id=external_id,
            paid=False,
            expired=False,
        )
        self.db.add(invoice)
        self.db.flush()
        logger.info(f"🧾 Invoice {invoice.id} for student {student.id}: {amount} via {invoice.payment_method}")
        return invoice

    def open_invoices(self, student_id: int) -> List[Invoice]:
        return self.db.query(Invoice).filter(
            Invoice.student_id == student_id,
            Invoice.paid == False,
            Invoice.expired == False,
        ).order_by(Invoice.id).all()

    def expire_open_invoices(self, student_id: int, keep_id: int = None) -> int:
        count = 0
        for invoice in self.open_invoices(student_id):
            if invoice.id == keep_id:
                continue
            invoice.expired = True
            count += 1
        if count:
            self.db.flush()
            logger.info(f"Expired {count} open invoice(s) for student {student_id}")
        return count

    def find_open_invoice(
        self, invoice_id: int = None, student_id: int = None,
        external_id: str = None, amount: Decimal = None,
        payment_method: PaymentMethod = None,
    ) -> Optional[Invoice]:
        """First unpaid, unexpired invoice matching every given filter."""
        q = self.db.query(Invoice).filter(
            Invoice.paid == False,
            Invoice.expired == False,
        )
        if invoice_id is not None:
            q = q.filter(Invoice.id == invoice_id)
        if student_id is not None:
            q = q.filter(Invoice.student_id == student_id)
        if external_id is not None:
            q = q.filter(Invoice.external_id == external_id)
        if amount is not None:
            q = q.filter(Invoice.amount == Decimal(str(amount)))
        if payment_method is not None:
            q = q.filter(Invoice.payment_method == PaymentMethod(payment_method).value)
        return q.order_by(Invoice.id).first()

    def invoice_by_external_id(self, external_id: str, payment_method: PaymentMethod) -> Optional[Invoice]:
        """Any invoice with this gateway id, including expired and paid ones."""
        return self.db.query(Invoice).filter(
            Invoice.external_id == external_id,
            Invoice.payment_method == PaymentMethod(payment_method).value,
        ).order_by(Invoice.id.desc()).first()

    # ==================== PAYMENTS ====================

    def payment_by_external_ref(self, payment_method: PaymentMethod, external_ref: str) -> Optional[Payment]:
        if not external_ref:
            return None
        return self.db.query(Payment).filter(
            Payment.payment_method == PaymentMethod(payment_method).value,
            Payment.external_ref == external_ref,
        ).first()

    def create_payment(
        self, student: Student, amount: Decimal, fees: Decimal,
        payment_method: PaymentMethod, clearing_data: dict = None,
        invoice: Invoice = None, external_ref: str = None,
    ) -> Optional[Payment]:
        """
        Record money received. When an invoice is given it is marked paid
        and linked in the same flush. Returns None if the invoice already
        has a payment.
        """
        if invoice is not None and invoice.payment_id is not None:
            logger.info(f"Invoice {invoice.id} already settled by payment {invoice.payment_id}, skipping")
            return None

        payment = Payment(
            student_id=student.id,
            amount=Decimal(str(amount)),
            fees=Decimal(str(fees or 0)),
            payment_method=PaymentMethod(payment_method).value,
            clearing_data=clearing_data,
            invoice_id=invoice.id if invoice is not None else None,
            external_ref=external_ref,
        )
        self.db.add(payment)
        self.db.flush()

        if invoice is not None:
            invoice.paid = True
            invoice.payment_id = payment.id
            self.db.flush()

        logger.info(
            f"💰 Payment {payment.id} for student {student.id}: {payment.amount} "
            f"via {payment.payment_method} (invoice={payment.invoice_id})"
        )
        return payment

    def payments_for(self, student_id: int) -> List[Payment]:
        return self.db.query(Payment).filter(
            Payment.student_id == student_id
        ).order_by(Payment.id).all()
