"""
Student service: signup, profile links and student-initiated billing actions.
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

import httpx

from core.config import settings
from core.errors import GatewayError, NotFoundError, ValidationError
from core.pricing import PlanCode, PricingCatalog
from database.base import utc_now
from database.models import Degree, PaymentMethod, SessionToken, Student, Subscription
from services.base import StudentServiceBase
from services.billing import BillingSummary, active_subscription
from services.ledger import LedgerService

logger = logging.getLogger(__name__)


class StudentService(StudentServiceBase):
    def __init__(self, db, catalog: PricingCatalog, gateways, onboarding=None):
        super().__init__(db)
        self.catalog = catalog
        self.gateways = gateways
        self.onboarding = onboarding

    # ==================== SIGNUP ====================

    def signup(
        self, email: str, full_name: str, country: Optional[str],
        payment_method: PaymentMethod = PaymentMethod.stripe,
        plan_code: PlanCode = None,
    ) -> Student:
        """
        Create the student and their subscription (signup fee), then try
        to invoice it. A gateway failure does not undo the signup; the
        student can ask to pay later.
        """
        email = (email or "").strip().lower()
        full_name = (full_name or "").strip()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        if not full_name:
            raise ValidationError("Full name is required")
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}")

        if self.db.query(Student).filter(Student.email == email).first():
            raise ValidationError(f"Email {email} is already registered")

        country = (country or "").strip().upper()[:2] or None
        plan = self.catalog.by_code(plan_code) if plan_code else self.catalog.plan_for_country(country)
        now = utc_now()

        student = Student(
            email=email,
            full_name=full_name,
            country=country,
            payment_method=method.value,
        )
        self.db.add(student)
        self.db.flush()

        self.db.add(Subscription(
            student_id=student.id,
            plan_code=plan.code.value,
            invoicing_day=now.day,
            price=plan.signup,
            active=True,
            paid=False,
        ))
        self._commit()
        logger.info(f"🆕 Student {student.id} signed up ({email}, plan={plan.code.value}, {method.value})")

        try:
            self.invoice_pending(student.id)
        except GatewayError as e:
            logger.warning(f"Student {student.id}: first invoice failed, will retry later: {e}")

        return student

    # ==================== SESSION TOKENS ====================

    def create_profile_link(self, student_id: int) -> str:
        student = self._get_student(student_id)
        token = SessionToken(
            student_id=student.id,
            token=secrets.token_urlsafe(32),
            expires_at=utc_now() + timedelta(hours=settings.session_token_hours),
        )
        self.db.add(token)
        self._commit()
        return f"{settings.students_domain.rstrip('/')}/students/?token={token.token}"

    # ==================== BILLING ACTIONS ====================

    def summary(self, student_id: int) -> BillingSummary:
        student = self._get_student(student_id)
        return BillingSummary.build(self.db, student, self.gateways, self.onboarding)

    def invoice_pending(self, student_id: int):
        """Invoice debt not covered by an open invoice."""
        return self._invoice(student_id, everything=False)

    def pay_now(self, student_id: int):
        """Expire open invoices and invoice the whole debt."""
        return self._invoice(student_id, everything=True)

    def _invoice(self, student_id: int, everything: bool):
        student = self._lock_student(student_id)
        try:
            summary = BillingSummary.build(self.db, student, self.gateways, self.onboarding)
            if everything:
                invoice = summary.invoice_everything()
            else:
                invoice = summary.invoice_all_not_invoiced_yet()
        except GatewayError:
            self._rollback_keeping_customer(student)
            raise
        except Exception:
            self._rollback()
            raise
        self._commit()
        return invoice

    def set_payment_method(self, student_id: int, payment_method) -> Student:
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}")

        student = self._lock_student(student_id)
        summary = BillingSummary.build(self.db, student, self.gateways, self.onboarding)
        summary.set_payment_method(method)
        self._commit()
        return student

    def send_payment_reminder(self, student_id: int):
        student = self._lock_student(student_id)
        invoices = LedgerService(self.db).open_invoices(student.id)
        if not invoices:
            self._rollback()
            raise NotFoundError(f"Student {student.id} has no open invoice")

        invoice = invoices[-1]
        try:
            self.onboarding.email.send("payment_link", student.email, student.full_name, {
                "full_name": student.full_name,
                "checkout_link": invoice.url,
                "amount": str(invoice.amount),
            })
        except (httpx.HTTPError, KeyError) as e:
            self._rollback()
            logger.error(f"[student {student.id}] Payment reminder failed: {e}")
            raise GatewayError("email", str(e)) from e

        invoice.notified_on = utc_now()
        self._commit()
        return invoice

    def award_degree(self, student_id: int, title: str, description: str = None, certificate_url: str = None) -> Degree:
        """Charge the degree fee of the student's plan and invoice it."""
        if not (title or "").strip():
            raise ValidationError("Degree title is required")

        student = self._lock_student(student_id)
        try:
            subscription = active_subscription(self.db, student.id)
            degree = Degree(
                student_id=student.id,
                title=title.strip(),
                description=description,
                certificate_url=certificate_url,
                price=self.catalog.by_code(subscription.plan_code).degree,
                paid=False,
            )
            self.db.add(degree)
            self.db.flush()
            BillingSummary.build(self.db, student, self.gateways, self.onboarding).invoice_all_not_invoiced_yet()
        except GatewayError:
            self._rollback_keeping_customer(student)
            raise
        except Exception:
            self._rollback()
            raise
        self._commit()
        logger.info(f"🎓 Degree {degree.id} '{degree.title}' ({degree.price}) for student {student.id}")
        return degree

    # ==================== ONBOARDING ====================

    def retry_onboarding(self, student_id: int) -> dict:
        student = self._get_student(student_id)
        if not self.onboarding.is_pending(student):
            raise ValidationError(f"Student {student.id} has no pending onboarding")
        return self.onboarding.complete(self.db, student)

    def community_link(self, student: Student) -> str:
        if not student.verification_passphrase:
            raise NotFoundError("Community access opens once the signup fee is paid")
        return self.onboarding.community.verification_link(student.verification_passphrase)

    def process_community_response(self, state: str, access_token: str) -> Student:
        """Discord redirected back: join the guild and store the handle."""
        if not state or not access_token:
            raise ValidationError("state and access_token are required")

        student = self.db.query(Student).filter(
            Student.verification_passphrase == state
        ).first()
        if not student:
            raise NotFoundError("Unknown verification token")

        community = self.onboarding.community
        try:
            profile = community.fetch_profile(access_token)
            community.add_student_member(profile["id"], access_token)
        except (httpx.HTTPError, KeyError) as e:
            logger.error(f"[student {student.id}] Discord verification failed: {e}")
            raise GatewayError("discord", str(e)) from e

        discriminator = profile.get("discriminator")
        handle = profile.get("username", "")
        if discriminator and discriminator != "0":
            handle = f"{handle}#{discriminator}"

        student.community_handle = handle
        student.community_user_id = str(profile["id"])
        self._commit()
        logger.info(f"Student {student.id} verified on Discord as {handle}")
        return student
