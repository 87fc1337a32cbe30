"""
Billing Scheduler

Runs inside the API process. Every tick creates the monthly charge for
each student whose invoicing day it is. Each student gets its own
session, and one student's failure does not stop the others.
"""
import asyncio
import logging
from datetime import date
from typing import Callable, Dict

from sqlalchemy.orm import Session

from core.errors import BillingError
from database.base import utc_now
from database.models import Student
from services.recurring import RecurringChargeService

logger = logging.getLogger(__name__)


class BillingScheduler:
    def __init__(
        self, session_factory: Callable[[], Session], catalog, gateways,
        onboarding=None, interval_seconds: int = 3600,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.gateways = gateways
        self.onboarding = onboarding
        self.interval_seconds = interval_seconds
        self.running = True

    async def run(self):
        """Main scheduler loop."""
        logger.info("📅 Billing scheduler started")

        while self.running:
            try:
                result = await asyncio.to_thread(self.tick, utc_now().date())
                if result["created"] or result["failed"]:
                    logger.info(f"Billing tick: {result}")
            except Exception as e:
                logger.error(f"Scheduler error: {e}")

            await asyncio.sleep(self.interval_seconds)

    def stop(self):
        self.running = False

    def tick(self, on: date) -> Dict[str, int]:
        """Create due monthly charges for every student on `on`."""
        session = self.session_factory()
        try:
            student_ids = [row.id for row in session.query(Student.id).order_by(Student.id).all()]
        finally:
            session.close()

        created = failed = 0
        for student_id in student_ids:
            session = self.session_factory()
            try:
                service = RecurringChargeService(session, self.catalog, self.gateways, self.onboarding)
                if service.create_monthly_charges_for(student_id, on) is not None:
                    created += 1
            except BillingError as e:
                failed += 1
                logger.error(f"[student {student_id}] Monthly charge for {on} failed: {e}")
            except Exception as e:
                failed += 1
                logger.exception(f"[student {student_id}] Unexpected error creating monthly charge for {on}: {e}")
            finally:
                session.close()

        return {"students": len(student_ids), "created": created, "failed": failed}
