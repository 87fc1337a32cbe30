"""
Onboarding: what happens the first time a student's signup fee is paid.

In the paying transaction the student receives a community verification
token (on_signup_paid). After that transaction commits, complete() creates
the LMS account and sends the welcome email. Each step runs at most once
and a failing step is logged and left for the next complete() call;
it never touches billing state.
"""

import logging
from typing import Callable, Dict

import httpx
from sqlalchemy.orm import Session

from database.base import utc_now
from database.models import Student
from services.community_client import CommunityClient
from services.email_sender import EmailSender
from services.lms_client import LMSClient
from services.passphrase import generate_passphrase

logger = logging.getLogger(__name__)


class Onboarding:
    def __init__(
        self, lms: LMSClient, community: CommunityClient, email: EmailSender,
        passphrase: Callable[[], str] = generate_passphrase,
    ):
        self.lms = lms
        self.community = community
        self.email = email
        self.passphrase = passphrase

    def on_signup_paid(self, student: Student):
        """Called while the signup charge is being marked paid."""
        if not student.verification_passphrase:
            student.verification_passphrase = self.passphrase()
            logger.info(f"🎓 Student {student.id} signup paid, onboarding queued")

    def is_pending(self, student: Student) -> bool:
        return bool(student.verification_passphrase) and student.onboarded_at is None

    def complete(self, db: Session, student: Student) -> Dict[str, bool]:
        """Run the remaining onboarding steps. Commits after each successful step."""
        lms_ready = self._setup_lms(db, student)
        # The welcome email carries the LMS credentials
        welcomed = self._send_welcome(db, student) if lms_ready else False
        return {"lms": lms_ready, "welcome_email": welcomed}

    def _setup_lms(self, db: Session, student: Student) -> bool:
        if student.lms_user_id:
            return True

        password = student.lms_initial_password or self.passphrase()
        try:
            user_id = self.lms.create_user(student.full_name, student.email, password)
            self.lms.add_to_student_group(user_id)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"[student {student.id}] LMS setup failed: {e}")
            return False

        student.lms_user_id = user_id
        student.lms_initial_password = password
        db.commit()
        return True

    def _send_welcome(self, db: Session, student: Student) -> bool:
        if student.onboarded_at is not None:
            return True

        params = {
            "full_name": student.full_name,
            "email": student.email,
            "password": student.lms_initial_password,
            "community_verification_link": self.community.verification_link(student.verification_passphrase),
        }
        try:
            self.email.send("welcome", student.email, student.full_name, params)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"[student {student.id}] Welcome email failed: {e}")
            return False

        student.onboarded_at = utc_now()
        db.commit()
        return True
