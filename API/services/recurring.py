"""
Recurring charges: create a student's monthly fee when it is due.

create_monthly_charges_for() takes an explicit date, so the same call
serves the daily scheduler, backfills and tests.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from core.errors import GatewayError
from core.pricing import PricingCatalog
from database.base import utc_now
from database.models import MonthlyCharge
from services.base import StudentServiceBase
from services.billing import BillingSummary, active_subscription, is_due

logger = logging.getLogger(__name__)

INSERT_IGNORE = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class RecurringChargeService(StudentServiceBase):
    def __init__(self, db, catalog: PricingCatalog, gateways, onboarding=None):
        super().__init__(db)
        self.catalog = catalog
        self.gateways = gateways
        self.onboarding = onboarding

    def create_monthly_charges_for(self, student_id: int, on: date) -> Optional[MonthlyCharge]:
        """
        Create the MonthlyCharge for `on` if it is the student's invoicing
        day, then invoice the new debt. Returns the charge, or None when
        nothing was due or the period was already charged.

        Charge and invoice are committed together; on GatewayError both
        are rolled back so the next tick retries.
        """
        student = self._lock_student(student_id)
        subscription = active_subscription(self.db, student.id)

        if not is_due(on, subscription.invoicing_day):
            self._rollback()
            return None

        # The signup fee covers the period the student signed up in
        if on <= subscription.created_at.date():
            self._rollback()
            return None

        plan = self.catalog.by_code(subscription.plan_code)
        charge = self._insert_charge(student.id, on, plan.monthly)
        if charge is None:
            self._rollback()
            logger.debug(f"Student {student.id} already charged for {on}")
            return None

        try:
            summary = BillingSummary.build(
                self.db, student, self.gateways, self.onboarding, today=on
            )
            summary.invoice_all_not_invoiced_yet()
        except GatewayError:
            self._rollback_keeping_customer(student)
            logger.warning(f"Student {student.id}: invoicing failed, monthly charge for {on} rolled back")
            raise
        except Exception:
            self._rollback()
            raise

        self._commit()
        logger.info(f"📅 Monthly charge {charge.id} ({charge.price}) for student {student.id}, period {on}")
        return charge

    def _insert_charge(self, student_id: int, on: date, price) -> Optional[MonthlyCharge]:
        """
        Insert the charge unless the (student, billing_period) row exists.
        One statement, guarded by the unique constraint.
        """
        values = dict(
            student_id=student_id,
            billing_period=on,
            price=price,
            paid=False,
            created_at=utc_now(),
            updated_at=utc_now(),
        )
        dialect = self.db.get_bind().dialect.name

        if dialect in INSERT_IGNORE:
            stmt = (
                INSERT_IGNORE[dialect](MonthlyCharge)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["student_id", "billing_period"])
                .returning(MonthlyCharge.id)
            )
            charge_id = self.db.execute(stmt).scalar()
            return self.db.get(MonthlyCharge, charge_id) if charge_id else None

        try:
            with self.db.begin_nested():
                charge = MonthlyCharge(**values)
                self.db.add(charge)
        except IntegrityError:
            return None
        return charge
