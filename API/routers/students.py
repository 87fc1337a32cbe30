"""
Student-facing billing endpoints.
Endpoint: /students/...

Students authenticate with the session token from their profile link
(?token=...).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from core.dependencies import get_catalog, get_current_student, get_gateways, get_onboarding
from database import get_db
from database.models import Student
from schemas.billing import BillingSummaryResponse, InvoiceResponse
from schemas.student import PaymentMethodRequest, SignupRequest, StudentResponse
from services.students import StudentService

router = APIRouter(tags=["Students"])


def get_student_service(
    db: Session = Depends(get_db),
    catalog=Depends(get_catalog),
    gateways=Depends(get_gateways),
    onboarding=Depends(get_onboarding),
) -> StudentService:
    return StudentService(db, catalog, gateways, onboarding)


def _invoice_or_none(invoice) -> Optional[dict]:
    return InvoiceResponse.model_validate(invoice).model_dump() if invoice else None


# ==================== SIGNUP ====================

@router.post("/", status_code=201)
def signup(
    body: SignupRequest,
    cf_ipcountry: Optional[str] = Header(None, alias="cf-ipcountry"),
    service: StudentService = Depends(get_student_service),
):
    """Sign up. The country falls back to the CDN's geo header."""
    country = body.country or (cf_ipcountry if cf_ipcountry and cf_ipcountry != "XX" else None)
    student = service.signup(body.email, body.full_name, country, body.payment_method)
    summary = service.summary(student.id)
    return {
        "student": StudentResponse.model_validate(student).model_dump(),
        "invoice": _invoice_or_none(summary.invoices[-1] if summary.invoices else None),
        "profile_link": service.create_profile_link(student.id),
    }


# ==================== BILLING ====================

@router.get("/", response_model=BillingSummaryResponse)
def get_billing_state(
    student: Student = Depends(get_current_student),
    service: StudentService = Depends(get_student_service),
):
    """Balance, unpaid charges, open invoice and full history."""
    return service.summary(student.id).to_dict()


@router.post("/pay_now")
def pay_now(
    student: Student = Depends(get_current_student),
    service: StudentService = Depends(get_student_service),
):
    """Invoice the whole outstanding balance in one checkout."""
    return {"invoice": _invoice_or_none(service.pay_now(student.id))}


@router.post("/payment_method")
def set_payment_method(
    body: PaymentMethodRequest,
    student: Student = Depends(get_current_student),
    service: StudentService = Depends(get_student_service),
):
    student = service.set_payment_method(student.id, body.payment_method)
    return {"payment_method": student.payment_method}


@router.post("/payment_reminder")
def send_payment_reminder(
    student: Student = Depends(get_current_student),
    service: StudentService = Depends(get_student_service),
):
    invoice = service.send_payment_reminder(student.id)
    return {"sent": True, "invoice_id": invoice.id}


# ==================== COMMUNITY ====================

@router.get("/community_link")
def community_link(
    student: Student = Depends(get_current_student),
    service: StudentService = Depends(get_student_service),
):
    return {"url": service.community_link(student)}


@router.post("/community_success")
def community_success(
    state: str = Query(...),
    access_token: str = Query(...),
    service: StudentService = Depends(get_student_service),
):
    """Discord OAuth redirect target."""
    student = service.process_community_response(state, access_token)
    return {"community_handle": student.community_handle}
