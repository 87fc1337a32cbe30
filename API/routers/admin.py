"""
Admin billing operations.
Endpoint: /admin/...
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from core.config import settings
from core.dependencies import get_catalog, get_current_admin, get_gateways, get_onboarding
from core.pricing import PlanCode
from database import get_db, utc_now
from schemas.billing import PaymentResponse
from schemas.student import SignupRequest, StudentResponse
from services.payments import PaymentService
from services.scheduler import BillingScheduler
from services.students import StudentService
from .students import get_student_service

router = APIRouter(tags=["Admin"])


# ==================== SCHEMAS ====================

class GuestSignupBody(SignupRequest):
    plan_code: PlanCode = PlanCode.GUEST


class AwardDegreeBody(BaseModel):
    title: str
    description: Optional[str] = None
    certificate_url: Optional[str] = None


# ==================== PAYMENTS ====================

@router.post("/payments/from_invoice")
def payment_from_invoice(
    invoice_id: int = Query(...),
    admin: str = Depends(get_current_admin),
    db: Session = Depends(get_db),
    gateways=Depends(get_gateways),
    onboarding=Depends(get_onboarding),
):
    """Settle an invoice by hand (money received outside the gateway webhook)."""
    service = PaymentService(db, gateways, onboarding)
    payment = service.from_invoice(invoice_id, admin=admin)
    return {
        "payment": PaymentResponse.model_validate(payment).model_dump() if payment else None,
        "already_settled": payment is None,
    }


# ==================== BILLING ====================

@router.post("/billing/tick")
def billing_tick(
    date_str: Optional[str] = Query(None, alias="date", description="YYYY-MM-DD, defaults to today"),
    admin: str = Depends(get_current_admin),
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
    gateways=Depends(get_gateways),
    onboarding=Depends(get_onboarding),
):
    """Run the monthly-charge tick for a date (backfills, manual runs)."""
    on = _parse_date(date_str) or utc_now().date()
    factory = sessionmaker(bind=db.get_bind(), autoflush=False, expire_on_commit=False)
    scheduler = BillingScheduler(factory, catalog, gateways, onboarding, settings.billing_tick_seconds)
    return {"date": on, **scheduler.tick(on)}


# ==================== STUDENTS ====================

@router.post("/students", status_code=201)
def create_student(
    body: GuestSignupBody,
    admin: str = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service),
):
    """Create a complimentary (Guest by default) account."""
    student = service.signup(
        body.email, body.full_name, body.country, body.payment_method, plan_code=body.plan_code
    )
    return StudentResponse.model_validate(student).model_dump()


@router.post("/students/{student_id}/profile_link")
def profile_link(
    student_id: int,
    admin: str = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service),
):
    return {"url": service.create_profile_link(student_id)}


@router.post("/students/{student_id}/degrees", status_code=201)
def award_degree(
    student_id: int,
    body: AwardDegreeBody,
    admin: str = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service),
):
    degree = service.award_degree(student_id, body.title, body.description, body.certificate_url)
    return {"id": degree.id, "title": degree.title, "price": degree.price}


@router.post("/students/{student_id}/onboarding")
def retry_onboarding(
    student_id: int,
    admin: str = Depends(get_current_admin),
    service: StudentService = Depends(get_student_service),
):
    """Re-run onboarding steps that failed after the signup fee was paid."""
    return service.retry_onboarding(student_id)


# ==================== HELPERS ====================

def _parse_date(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise HTTPException(422, f"Invalid date: {s}")
