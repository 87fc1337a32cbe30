"""
Charge: uniform view over Subscription, MonthlyCharge and Degree rows.

The set of charge kinds is closed, so Charge is a tagged wrapper
(kind + record) and every accessor branches on the kind.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from core.pricing import ChargeKind, GatewayPriceTable
from database.base import utc_now
from database.models import Subscription, MonthlyCharge, Degree

ChargeRecord = Union[Subscription, MonthlyCharge, Degree]


@dataclass
class Charge:
    kind: ChargeKind
    record: ChargeRecord

    @classmethod
    def of(cls, record: ChargeRecord) -> "Charge":
        if isinstance(record, Subscription):
            return cls(ChargeKind.SUBSCRIPTION, record)
        if isinstance(record, MonthlyCharge):
            return cls(ChargeKind.MONTHLY, record)
        if isinstance(record, Degree):
            return cls(ChargeKind.DEGREE, record)
        raise TypeError(f"Not a charge: {record!r}")

    def description(self) -> str:
        if self.kind == ChargeKind.SUBSCRIPTION:
            return "Signup fee"
        if self.kind == ChargeKind.MONTHLY:
            return f"Monthly fee {self.record.billing_period:%Y-%m}"
        return f"Degree: {self.record.title}"

    def created_at(self) -> datetime:
        return self.record.created_at

    def amount(self) -> Decimal:
        return Decimal(self.record.price or 0)

    def paid_at(self) -> Optional[datetime]:
        return self.record.paid_at

    def is_paid(self) -> bool:
        return self.record.paid_at is not None

    def gateway_price_ref(self, prices: GatewayPriceTable, plan_code: str) -> str:
        """Gateway price id for this charge under the student's plan."""
        return prices.price_id(plan_code, self.kind)

    def mark_paid(self, onboarding=None, now: datetime = None) -> None:
        """
        Set paid/paid_at on the record. Paying the signup fee also starts
        onboarding for the student.
        """
        if self.is_paid():
            raise ValueError(f"{self.description()} (id={self.record.id}) is already paid")

        self.record.paid = True
        self.record.paid_at = now or utc_now()

        if self.kind == ChargeKind.SUBSCRIPTION and onboarding is not None:
            onboarding.on_signup_paid(self.record.student)

    def to_history(self) -> dict:
        return {
            "kind": self.kind.value,
            "id": self.record.id,
            "description": self.description(),
            "created_at": self.created_at(),
            "amount": -self.amount(),
            "paid_at": self.paid_at(),
        }
