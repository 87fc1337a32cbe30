"""
Charge records: what a student owes.

Subscription (signup fee), MonthlyCharge (one per billing period)
and Degree (one per awarded certification).
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean,
    DateTime, Date, ForeignKey, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship

from ..base import BaseModel


class Subscription(BaseModel):
    """Signup fee + recurring billing terms. One active row per student."""

    __tablename__ = 'subscriptions'

    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    plan_code = Column(String(20), nullable=False)
    invoicing_day = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    paid = Column(Boolean, default=False, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    student = relationship("Student", back_populates="subscriptions")


class MonthlyCharge(BaseModel):
    """Recurring fee for one billing period."""

    __tablename__ = 'monthly_charges'
    __table_args__ = (
        UniqueConstraint('student_id', 'billing_period', name='uq_monthly_charge_period'),
    )

    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    billing_period = Column(Date, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    paid = Column(Boolean, default=False, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    student = relationship("Student", back_populates="monthly_charges")


class Degree(BaseModel):
    """One-off charge for an awarded certification."""

    __tablename__ = 'degrees'

    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    certificate_url = Column(String(500), nullable=True)
    price = Column(Numeric(12, 2), nullable=False)

    paid = Column(Boolean, default=False, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    student = relationship("Student", back_populates="degrees")
