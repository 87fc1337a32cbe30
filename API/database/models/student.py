"""
Student accounts and their session tokens.
"""

from enum import Enum as PyEnum
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..base import BaseModel


class PaymentMethod(str, PyEnum):
    """Payment gateways a student can choose."""
    stripe = "stripe"    # card, subscription-style checkout
    btcpay = "btcpay"    # crypto, lump-sum invoice


class Student(BaseModel):
    """
    Student identity and billing profile.

    Onboarding fields (verification_passphrase, lms_user_id, community_*)
    are filled the first time the signup charge is paid.
    """

    __tablename__ = 'students'

    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    country = Column(String(2), nullable=True)
    payment_method = Column(String(20), default=PaymentMethod.stripe.value, nullable=False)

    # Gateway customer ids
    stripe_customer_id = Column(String(100), nullable=True, unique=True, index=True)

    # Onboarding
    verification_passphrase = Column(String(255), nullable=True, unique=True, index=True)
    lms_user_id = Column(String(100), nullable=True)
    lms_initial_password = Column(String(255), nullable=True)
    community_handle = Column(String(100), nullable=True)
    community_user_id = Column(String(100), nullable=True)
    onboarded_at = Column(DateTime, nullable=True)

    subscriptions = relationship("Subscription", back_populates="student", order_by="Subscription.id")
    monthly_charges = relationship("MonthlyCharge", back_populates="student", order_by="MonthlyCharge.id")
    degrees = relationship("Degree", back_populates="student", order_by="Degree.id")
    invoices = relationship("Invoice", back_populates="student", order_by="Invoice.id")
    payments = relationship("Payment", back_populates="student", order_by="Payment.id")

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod(self.payment_method)

    def __repr__(self):
        return f"<Student(id={self.id}, email='{self.email}')>"


class SessionToken(BaseModel):
    """Short-lived token used in profile links."""

    __tablename__ = 'session_tokens'

    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)

    student = relationship("Student")
