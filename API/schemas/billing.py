"""
Billing schemas: summary, invoices, payments, pricing.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class HistoryItem(BaseModel):
    kind: str
    id: int
    description: str
    created_at: datetime
    amount: Decimal
    paid_at: Optional[datetime] = None


class InvoiceSummary(BaseModel):
    id: int
    amount: Decimal
    url: str
    payment_method: str
    created_at: datetime


class BillingSummaryResponse(BaseModel):
    student_id: int
    email: str
    payment_method: str
    plan_code: str
    balance: Decimal
    total_charges_not_invoiced_yet: Optional[Decimal] = None
    next_invoicing_date: date
    unpaid_charges: List[HistoryItem]
    invoices: List[InvoiceSummary]
    history: List[HistoryItem]


class InvoiceResponse(BaseModel):
    id: int
    student_id: int
    amount: Decimal
    url: str
    external_id: str
    payment_method: str
    description: Optional[str] = None
    paid: bool
    expired: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    student_id: int
    amount: Decimal
    fees: Decimal
    payment_method: str
    invoice_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PlanPrices(BaseModel):
    plan_code: str
    signup: Decimal
    monthly: Decimal
    degree: Decimal


class PricingResponse(PlanPrices):
    """Plan for the country, with the Global plan for comparison."""

    country: Optional[str] = None
    global_plan: PlanPrices
