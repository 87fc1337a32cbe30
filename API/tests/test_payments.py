from datetime import date
from decimal import Decimal

import pytest

from core.errors import NotFoundError
from database.models import Invoice, MonthlyCharge, Payment, PaymentMethod
from services.billing import BillingSummary
from services.payments import PaymentService
from tests.fakes import add_student


@pytest.fixture
def payments(db_session, gateways, onboarding):
    return PaymentService(db_session, gateways, onboarding)


def _invoice(db, student, gateways):
    invoice = BillingSummary.build(db, student, gateways).invoice_all_not_invoiced_yet()
    db.commit()
    return invoice


def _settled(external_id):
    return {"type": "InvoiceSettled", "invoiceId": external_id, "storeId": "store-1"}


def _stripe_paid(customer, amount_cents, ref="in_1"):
    return {
        "id": "evt_" + ref,
        "type": "invoice.payment_succeeded",
        "data": {"object": {"id": ref, "customer": customer, "amount_paid": amount_cents, "paid": True}},
    }


# ==================== BTCPAY ====================

def test_btcpay_settlement_pays_invoice_and_onboards(db_session, gateways, payments, lms, email):
    student = add_student(db_session)
    invoice = _invoice(db_session, student, gateways)

    payment = payments.from_btcpay_webhook(_settled(invoice.external_id))

    assert payment.amount == Decimal("100")
    assert payment.invoice_id == invoice.id
    assert payment.external_ref == invoice.external_id
    assert invoice.paid and invoice.payment_id == payment.id
    assert student.subscriptions[0].paid
    assert len(lms.users) == 1
    assert [m["template"] for m in email.sent] == ["welcome"]
    assert student.onboarded_at is not None


def test_btcpay_redelivery_is_a_noop(db_session, gateways, payments, lms, email):
    student = add_student(db_session)
    invoice = _invoice(db_session, student, gateways)

    payments.from_btcpay_webhook(_settled(invoice.external_id))
    again = payments.from_btcpay_webhook(_settled(invoice.external_id))

    assert again is None
    assert db_session.query(Payment).count() == 1
    assert len(lms.users) == 1
    assert len(email.sent) == 1


def test_btcpay_other_events_and_unknown_invoices_are_ignored(db_session, gateways, payments):
    student = add_student(db_session)
    invoice = _invoice(db_session, student, gateways)

    assert payments.from_btcpay_webhook({"type": "InvoiceCreated", "invoiceId": invoice.external_id}) is None
    assert payments.from_btcpay_webhook(_settled("btcpay-unknown")) is None
    assert db_session.query(Payment).count() == 0


def test_btcpay_settles_superseded_invoice(db_session, gateways, payments):
    student = add_student(db_session)
    first = _invoice(db_session, student, gateways)
    db_session.add(MonthlyCharge(
        student_id=student.id, billing_period=date(2026, 2, 1), price=Decimal("30"), paid=False,
    ))
    db_session.commit()
    second = _invoice(db_session, student, gateways)
    assert first.expired

    payment = payments.from_btcpay_webhook(_settled(first.external_id))
    summary = BillingSummary.build(db_session, student, gateways)

    assert payment.amount == Decimal("100")
    assert summary.balance == Decimal("-30")
    assert student.subscriptions[0].paid
    assert not second.paid


# ==================== STRIPE ====================

def test_stripe_payment_matches_open_invoice_by_amount(db_session, gateways, payments):
    student = add_student(db_session, method=PaymentMethod.stripe)
    invoice = _invoice(db_session, student, gateways)

    payment = payments.from_stripe_event(_stripe_paid(student.stripe_customer_id, 10000))

    assert payment.amount == Decimal("100")
    assert payment.invoice_id == invoice.id
    assert invoice.paid
    assert student.subscriptions[0].paid


def test_stripe_redelivery_is_a_noop(db_session, gateways, payments):
    student = add_student(db_session, method=PaymentMethod.stripe)
    _invoice(db_session, student, gateways)
    event = _stripe_paid(student.stripe_customer_id, 10000)

    payments.from_stripe_event(event)

    assert payments.from_stripe_event(event) is None
    assert db_session.query(Payment).count() == 1


def test_stripe_unknown_customer_is_ignored(db_session, payments):
    assert payments.from_stripe_event(_stripe_paid("cus_unknown", 10000)) is None
    assert payments.from_stripe_event({"type": "customer.created", "data": {"object": {}}}) is None
    assert db_session.query(Payment).count() == 0


def test_stripe_amount_mismatch_records_unlinked_payment(db_session, gateways, payments):
    student = add_student(db_session, method=PaymentMethod.stripe)
    invoice = _invoice(db_session, student, gateways)

    payment = payments.from_stripe_event(_stripe_paid(student.stripe_customer_id, 5000))
    summary = BillingSummary.build(db_session, student, gateways)

    assert payment.invoice_id is None
    assert not invoice.paid
    assert summary.balance == Decimal("-50")
    assert not student.subscriptions[0].paid


# ==================== ADMIN ====================

def test_admin_settles_invoice_once(db_session, gateways, payments):
    student = add_student(db_session)
    invoice = _invoice(db_session, student, gateways)

    payment = payments.from_invoice(invoice.id, admin="admin@academy.org")

    assert payment.clearing_data["source"] == "admin"
    assert payment.payment_method == "btcpay"
    assert payments.from_invoice(invoice.id) is None
    assert db_session.query(Payment).count() == 1


def test_admin_unknown_invoice(payments):
    with pytest.raises(NotFoundError):
        payments.from_invoice(404)


# ==================== ONBOARDING ====================

def test_failed_lms_leaves_onboarding_pending(db_session, gateways, payments, onboarding, lms, email):
    student = add_student(db_session)
    invoice = _invoice(db_session, student, gateways)
    lms.fail = True

    payment = payments.from_btcpay_webhook(_settled(invoice.external_id))

    assert payment is not None
    assert student.subscriptions[0].paid
    assert onboarding.is_pending(student)
    assert email.sent == []

    lms.fail = False
    assert onboarding.complete(db_session, student) == {"lms": True, "welcome_email": True}
    assert onboarding.complete(db_session, student) == {"lms": True, "welcome_email": True}
    assert len(lms.users) == 1
    assert len(email.sent) == 1
    assert not onboarding.is_pending(student)


def test_welcome_email_carries_lms_credentials(db_session, gateways, payments, email):
    student = add_student(db_session)
    invoice = _invoice(db_session, student, gateways)

    payments.from_btcpay_webhook(_settled(invoice.external_id))
    params = email.sent[0]["params"]

    assert params["password"] == student.lms_initial_password
    assert params["community_verification_link"].endswith(student.verification_passphrase)
    assert db_session.query(Invoice).filter(Invoice.paid == True).count() == 1


def test_stripe_event_without_reference_is_recorded(db_session, gateways, payments):
    student = add_student(db_session, method=PaymentMethod.stripe)
    invoice = _invoice(db_session, student, gateways)
    payments.from_invoice(invoice.id, admin="admin@academy.org")
    event = {
        "type": "invoice.payment_succeeded",
        "data": {"object": {"customer": student.stripe_customer_id, "amount_paid": 3000, "paid": True}},
    }

    payment = payments.from_stripe_event(event)

    assert payment is not None
    assert payment.external_ref is None
    assert db_session.query(Payment).count() == 2
