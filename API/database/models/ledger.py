"""
Invoices (requests for money) and payments (money received).
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean,
    DateTime, ForeignKey, Text, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship

from ..base import BaseModel


class Invoice(BaseModel):
    """
    Request for payment through one gateway.

    pending → paid (payment_id set) or pending → expired (superseded).
    """

    __tablename__ = 'invoices'

    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)
    external_id = Column(String(255), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    url = Column(String(1000), nullable=False)
    description = Column(Text, nullable=True)

    paid = Column(Boolean, default=False, nullable=False)
    expired = Column(Boolean, default=False, nullable=False)
    payment_id = Column(Integer, nullable=True, index=True)
    notified_on = Column(DateTime, nullable=True)

    student = relationship("Student", back_populates="invoices")

    @property
    def is_open(self) -> bool:
        return not self.paid and not self.expired


class Payment(BaseModel):
    """Immutable record of money received."""

    __tablename__ = 'payments'
    __table_args__ = (
        UniqueConstraint('payment_method', 'external_ref', name='uq_payment_external_ref'),
    )

    student_id = Column(Integer, ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    fees = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False)
    clearing_data = Column(JSON, nullable=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=True, index=True)

    # Gateway reference (Stripe invoice id / BTCPay invoice id) for webhook dedupe
    external_ref = Column(String(255), nullable=True)

    student = relationship("Student", back_populates="payments")
    invoice = relationship("Invoice", foreign_keys=[invoice_id])
