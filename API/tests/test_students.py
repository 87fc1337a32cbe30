from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from core.errors import GatewayError, NotFoundError, ValidationError
from core.pricing import PlanCode
from database.models import Invoice, PaymentMethod, SessionToken, Student
from services.gateways import GatewayRegistry, StripeGateway
from services.payments import PaymentService
from services.students import StudentService
from tests.fakes import add_student, price_table


@pytest.fixture
def students(db_session, catalog, gateways, onboarding):
    return StudentService(db_session, catalog, gateways, onboarding)


def _signup(students, **kwargs):
    data = {"email": "Ana@Academy.org", "full_name": "Ana Lima", "country": "ar", "payment_method": "btcpay"}
    data.update(kwargs)
    return students.signup(**data)


def _pay_signup(db_session, gateways, onboarding, student):
    invoice = db_session.query(Invoice).filter(Invoice.student_id == student.id).one()
    PaymentService(db_session, gateways, onboarding).from_invoice(invoice.id)


# ==================== SIGNUP ====================

def test_signup_resolves_plan_and_invoices(db_session, students, btcpay_gateway):
    student = _signup(students)

    assert student.email == "ana@academy.org"
    assert student.country == "AR"
    subscription = student.subscriptions[0]
    assert subscription.plan_code == "latam"
    assert subscription.price == Decimal("100")
    assert 1 <= subscription.invoicing_day <= 31
    invoice = db_session.query(Invoice).one()
    assert invoice.amount == Decimal("100")
    assert btcpay_gateway.requests[0]["student_id"] == student.id


def test_signup_rejects_bad_input(students):
    with pytest.raises(ValidationError):
        _signup(students, email="not-an-email")
    with pytest.raises(ValidationError):
        _signup(students, full_name="  ")
    with pytest.raises(ValidationError):
        _signup(students, payment_method="paypal")


def test_signup_rejects_duplicate_email(students):
    _signup(students)

    with pytest.raises(ValidationError):
        _signup(students, email="ana@academy.org")


def test_signup_survives_gateway_failure(db_session, students, btcpay_gateway):
    btcpay_gateway.fail = True

    student = _signup(students)

    assert db_session.query(Student).count() == 1
    assert db_session.query(Invoice).count() == 0

    btcpay_gateway.fail = False
    assert students.invoice_pending(student.id).amount == Decimal("100")


def test_guest_signup_is_never_invoiced(db_session, students):
    student = _signup(students, plan_code=PlanCode.GUEST)

    assert student.subscriptions[0].price == Decimal("0")
    assert db_session.query(Invoice).count() == 0


# ==================== SESSION TOKENS ====================

def test_profile_link_carries_session_token(db_session, students):
    student = _signup(students)

    link = students.create_profile_link(student.id)

    token = db_session.query(SessionToken).one()
    assert link == f"https://academy.test/students/?token={token.token}"
    assert token.student_id == student.id
    assert token.expires_at > token.created_at


def test_profile_link_unknown_student(students):
    with pytest.raises(NotFoundError):
        students.create_profile_link(999)


# ==================== BILLING ACTIONS ====================

def test_pay_now_replaces_open_invoice(db_session, students, btcpay_gateway):
    student = _signup(students)

    invoice = students.pay_now(student.id)

    assert invoice.amount == Decimal("100")
    assert db_session.query(Invoice).filter(Invoice.expired == True).count() == 1
    assert len(btcpay_gateway.requests) == 2


def test_change_payment_method_then_invoice(db_session, students, stripe_gateway):
    student = _signup(students)

    students.set_payment_method(student.id, "stripe")
    invoice = students.invoice_pending(student.id)

    assert student.payment_method == "stripe"
    assert invoice.payment_method == "stripe"
    assert len(stripe_gateway.requests) == 1
    with pytest.raises(ValidationError):
        students.set_payment_method(student.id, "cash")


def test_payment_reminder(db_session, students, email):
    student = _signup(students)

    invoice = students.send_payment_reminder(student.id)

    assert invoice.notified_on is not None
    assert email.sent[0]["template"] == "payment_link"
    assert email.sent[0]["params"]["checkout_link"] == invoice.url


def test_payment_reminder_without_open_invoice(students):
    student = _signup(students, plan_code=PlanCode.GUEST)

    with pytest.raises(NotFoundError):
        students.send_payment_reminder(student.id)


def test_award_degree_invoices_plan_degree_fee(db_session, students):
    student = _signup(students)

    degree = students.award_degree(student.id, "Python Developer", certificate_url="https://academy.test/c/1")

    assert degree.price == Decimal("250")
    open_invoice = db_session.query(Invoice).filter(Invoice.expired == False).one()
    assert open_invoice.amount == Decimal("350")
    with pytest.raises(ValidationError):
        students.award_degree(student.id, " ")


# ==================== ONBOARDING ====================

def test_onboarding_retry_needs_pending_onboarding(students):
    student = _signup(students)

    with pytest.raises(ValidationError):
        students.retry_onboarding(student.id)
    with pytest.raises(NotFoundError):
        students.community_link(student)


def test_community_verification(db_session, students, gateways, onboarding, community):
    community.profile = {"id": "987", "username": "ana", "discriminator": "4242"}
    student = _signup(students)
    _pay_signup(db_session, gateways, onboarding, student)

    link = students.community_link(student)
    verified = students.process_community_response(student.verification_passphrase, "token-1")

    assert link.endswith(student.verification_passphrase)
    assert verified.community_handle == "ana#4242"
    assert verified.community_user_id == "987"
    assert community.members == ["987"]


def test_community_verification_errors(db_session, students, gateways, onboarding):
    student = _signup(students)
    _pay_signup(db_session, gateways, onboarding, student)

    with pytest.raises(NotFoundError):
        students.process_community_response("unknown+words", "token-1")
    with pytest.raises(GatewayError):
        students.process_community_response(student.verification_passphrase, "bad")
    with pytest.raises(ValidationError):
        students.process_community_response("", "token-1")


def test_stripe_customer_survives_failed_checkout(db_session, catalog, onboarding, btcpay_gateway, monkeypatch):
    customers = []

    def create_customer(**kwargs):
        customers.append(kwargs)
        return SimpleNamespace(id=f"cus_{len(customers)}")

    def create_session(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)
    gateways = GatewayRegistry([StripeGateway("sk_test", price_table(), "https://academy.test"), btcpay_gateway])
    students = StudentService(db_session, catalog, gateways, onboarding)
    student = add_student(db_session, method=PaymentMethod.stripe)

    for _ in range(2):
        with pytest.raises(GatewayError):
            students.invoice_pending(student.id)
    db_session.expire_all()

    assert len(customers) == 1
    assert student.stripe_customer_id == "cus_1"
    assert db_session.query(Invoice).count() == 0
