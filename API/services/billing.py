"""
Billing summary: reconcile what a student owes against what they paid.

A summary is built fresh from the database for one student on every
call. It computes the balance and the unpaid charges, opens invoices for
debt that has not been invoiced yet, and retires unpaid charges after a
payment is recorded.

Nothing here commits. Callers lock the student row, call the summary
and commit (or roll back) the whole operation.
"""

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from core.errors import NotFoundError
from core.pricing import PlanCode
from database.models import (
    Student, Subscription, MonthlyCharge, Degree, PaymentMethod,
)
from database.base import utc_now
from services.charges import Charge
from services.ledger import LedgerService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ==================== INVOICING DAY ====================

def due_date_in_month(year: int, month: int, invoicing_day: int) -> date:
    """Invoicing day for the month, clamped to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(invoicing_day, 1), last_day))


def is_due(on: date, invoicing_day: int) -> bool:
    return on == due_date_in_month(on.year, on.month, invoicing_day)


def next_invoicing_date(today: date, invoicing_day: int) -> date:
    """This month's invoicing date, or next month's if today is on or past it."""
    this_month = due_date_in_month(today.year, today.month, invoicing_day)
    if today < this_month:
        return this_month
    year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
    return due_date_in_month(year, month, invoicing_day)


def active_subscription(db: Session, student_id: int) -> Subscription:
    subscription = db.query(Subscription).filter(
        Subscription.student_id == student_id,
        Subscription.active == True,
    ).order_by(Subscription.id).first()
    if not subscription:
        raise NotFoundError(f"Student {student_id} has no active subscription")
    return subscription


# ==================== SUMMARY ====================

class BillingSummary:
    def __init__(
        self, db: Session, student: Student, subscription: Subscription,
        charges: List[Charge], payments: list, invoices: list,
        gateways=None, onboarding=None, today: date = None,
    ):
        self.db = db
        self.ledger = LedgerService(db)
        self.student = student
        self.subscription = subscription
        self.gateways = gateways
        self.onboarding = onboarding

        self.charges = charges
        self.payments = payments
        self.unpaid_charges = [c for c in charges if not c.is_paid()]

        self.balance = (
            sum((p.amount for p in payments), ZERO)
            - sum((c.amount() for c in charges), ZERO)
        )

        self.invoices = invoices
        self.invoiced = sum((i.amount for i in invoices), ZERO)
        self.total_charges_not_invoiced_yet = self._not_invoiced(self.balance, self.invoiced)

        self.next_invoicing_date = next_invoicing_date(
            today or utc_now().date(), subscription.invoicing_day
        )

    @classmethod
    def build(cls, db: Session, student: Student, gateways=None, onboarding=None, today: date = None) -> "BillingSummary":
        subscription = active_subscription(db, student.id)

        # Priority order: subscription, then degrees, then monthly charges (load order)
        charges = [Charge.of(subscription)]
        charges += [
            Charge.of(d) for d in db.query(Degree).filter(
                Degree.student_id == student.id
            ).order_by(Degree.id).all()
        ]
        charges += [
            Charge.of(m) for m in db.query(MonthlyCharge).filter(
                MonthlyCharge.student_id == student.id
            ).order_by(MonthlyCharge.id).all()
        ]

        ledger = LedgerService(db)
        return cls(
            db, student, subscription, charges,
            payments=ledger.payments_for(student.id),
            invoices=ledger.open_invoices(student.id),
            gateways=gateways, onboarding=onboarding, today=today,
        )

    @staticmethod
    def _not_invoiced(balance: Decimal, invoiced: Decimal) -> Optional[Decimal]:
        invoiceable = -balance - invoiced
        return invoiceable if invoiceable > ZERO else None

    @property
    def plan_code(self) -> PlanCode:
        return PlanCode(self.subscription.plan_code)

    # ==================== INVOICING ====================

    def invoice_all_not_invoiced_yet(self):
        """
        Open one invoice for debt not covered by an open invoice.
        Returns the new Invoice, or None when there is nothing to invoice.

        A student keeps at most one open invoice: when one already exists,
        the new invoice covers the whole debt (-balance, not just the
        uninvoiced remainder) and supersedes it once the gateway call
        succeeded. GatewayError leaves nothing persisted.
        """
        if self.plan_code == PlanCode.GUEST:
            return None

        amount = self.total_charges_not_invoiced_yet
        if amount is None:
            return None

        superseded = [i.id for i in self.invoices]
        if superseded:
            # Replacement invoice bills the full debt
            amount = -self.balance

        gateway = self.gateways.for_method(self.student.method)
        result = gateway.request_invoice(
            self.student, self.unpaid_charges, amount, self.plan_code.value
        )

        if superseded:
            self.ledger.expire_open_invoices(self.student.id)

        invoice = self.ledger.create_invoice(
            self.student, amount, gateway.method,
            description=self._invoice_description(),
            url=result.url,
            external_id=result.external_id,
        )
        self.invoices = [invoice]
        self.invoiced = invoice.amount
        self.total_charges_not_invoiced_yet = None
        return invoice

    def invoice_everything(self):
        """Expire every open invoice and invoice the full debt in one go."""
        self.ledger.expire_open_invoices(self.student.id)
        self.invoices = []
        self.invoiced = ZERO
        self.total_charges_not_invoiced_yet = -self.balance if self.balance < ZERO else None
        return self.invoice_all_not_invoiced_yet()

    def set_payment_method(self, payment_method) -> int:
        """Switch gateway. Open invoices belong to the old gateway and are expired."""
        method = PaymentMethod(payment_method)
        self.student.payment_method = method.value
        expired = self.ledger.expire_open_invoices(self.student.id)
        self.invoices = []
        self.invoiced = ZERO
        self.total_charges_not_invoiced_yet = self._not_invoiced(self.balance, self.invoiced)
        logger.info(f"Student {self.student.id} now pays with {method.value}")
        return expired

    def _invoice_description(self) -> str:
        return "Pending charges: " + ", ".join(c.description() for c in self.unpaid_charges)

    # ==================== RECONCILIATION ====================

    def sync_paid_status(self) -> List[Charge]:
        """
        Retire unpaid charges front to back while the balance covers them.

        Charges are never partially paid and a later charge is never
        retired while an earlier one stays unpaid. Returns the charges
        marked paid.
        """
        if not self.unpaid_charges:
            return []

        unsynced = sum((c.amount() for c in self.unpaid_charges), ZERO)
        retired = []

        for charge in self.unpaid_charges:
            remaining = unsynced - charge.amount()
            if -remaining > self.balance:
                break
            charge.mark_paid(self.onboarding)
            unsynced = remaining
            retired.append(charge)

        if retired:
            self.db.flush()
            logger.info(
                f"✅ Student {self.student.id}: {len(retired)} charge(s) paid "
                f"({', '.join(c.description() for c in retired)})"
            )

        self.unpaid_charges = [c for c in self.unpaid_charges if not c.is_paid()]
        return retired

    # ==================== OUTPUT ====================

    def history(self) -> List[dict]:
        items = [c.to_history() for c in self.charges]
        items += [
            {
                "kind": "payment",
                "id": p.id,
                "description": f"Payment #{p.id} via {p.payment_method}",
                "created_at": p.created_at,
                "amount": p.amount,
                "paid_at": p.created_at,
            }
            for p in self.payments
        ]
        return sorted(items, key=lambda i: (i["created_at"], i["kind"], i["id"]))

    def to_dict(self) -> dict:
        return {
            "student_id": self.student.id,
            "email": self.student.email,
            "payment_method": self.student.payment_method,
            "plan_code": self.subscription.plan_code,
            "balance": self.balance,
            "total_charges_not_invoiced_yet": self.total_charges_not_invoiced_yet,
            "next_invoicing_date": self.next_invoicing_date,
            "unpaid_charges": [c.to_history() for c in self.unpaid_charges],
            "invoices": [
                {
                    "id": i.id,
                    "amount": i.amount,
                    "url": i.url,
                    "payment_method": i.payment_method,
                    "created_at": i.created_at,
                }
                for i in self.invoices
            ],
            "history": self.history(),
        }
