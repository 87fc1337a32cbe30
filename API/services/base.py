"""
Base service class for per-student billing operations.

Every mutating billing operation locks the student row first, so two
requests for the same student run one after the other while different
students proceed in parallel.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.errors import NotFoundError, PersistenceError
from database.models import Student

logger = logging.getLogger(__name__)


class StudentServiceBase:
    """
    Usage:
        class PaymentService(StudentServiceBase):
            def settle(self, student_id):
                student = self._lock_student(student_id)
                ...
                self._commit()
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_student(self, student_id: int) -> Student:
        student = self.db.query(Student).filter(Student.id == student_id).first()
        if not student:
            raise NotFoundError(f"Student {student_id} not found")
        return student

    def _lock_student(self, student_id: int) -> Student:
        """SELECT ... FOR UPDATE on the student row (held until commit/rollback)."""
        student = (
            self.db.query(Student)
            .filter(Student.id == student_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not student:
            raise NotFoundError(f"Student {student_id} not found")
        return student

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Commit failed: {e}")
            raise PersistenceError(str(e)) from e

    def _rollback(self):
        self.db.rollback()

    def _rollback_keeping_customer(self, student: Student):
        """
        Roll back, but keep a Stripe customer id created during the
        transaction: the customer already exists on Stripe's side.
        """
        customer_id = student.stripe_customer_id
        self.db.rollback()
        if customer_id and student.stripe_customer_id != customer_id:
            student.stripe_customer_id = customer_id
            self._commit()
            logger.info(f"Kept Stripe customer {customer_id} for student {student.id} after rollback")
