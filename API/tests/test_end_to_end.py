from decimal import Decimal

from database.models import Invoice, Payment
from services.billing import BillingSummary, due_date_in_month
from services.payments import PaymentService
from services.scheduler import BillingScheduler
from services.students import StudentService


def _months_ahead(start, n, invoicing_day):
    month = start.month - 1 + n
    return due_date_in_month(start.year + month // 12, month % 12 + 1, invoicing_day)


def _settle_open_invoice(db, payments, student):
    invoice = db.query(Invoice).filter(
        Invoice.student_id == student.id, Invoice.paid == False, Invoice.expired == False,
    ).one()
    assert payments.from_invoice(invoice.id, admin="admin@academy.org") is not None
    return invoice


def test_three_months_of_billing(database, db_session, catalog, gateways, onboarding, btcpay_gateway, email):
    students = StudentService(db_session, catalog, gateways, onboarding)
    payments = PaymentService(db_session, gateways, onboarding)
    scheduler = BillingScheduler(database.get_session_direct, catalog, gateways, onboarding)

    student = students.signup("ana@academy.org", "Ana Lima", "AR", "btcpay")
    subscription = student.subscriptions[0]
    signup_date, day = subscription.created_at.date(), subscription.invoicing_day

    paid = [_settle_open_invoice(db_session, payments, student).amount]
    for n in (1, 2, 3):
        assert scheduler.tick(_months_ahead(signup_date, n, day))["created"] == 1
        db_session.expire_all()
        if n < 3:
            paid.append(_settle_open_invoice(db_session, payments, student).amount)

    db_session.expire_all()
    summary = BillingSummary.build(db_session, student, gateways)

    assert paid == [Decimal("100"), Decimal("30"), Decimal("30")]
    assert len(summary.unpaid_charges) == 1
    assert summary.balance == Decimal("-30")
    assert summary.invoiced == Decimal("30")
    assert db_session.query(Payment).count() == 3
    assert [r["amount"] for r in btcpay_gateway.requests] == [
        Decimal("100"), Decimal("30"), Decimal("30"), Decimal("30"),
    ]
    assert [m["template"] for m in email.sent] == ["welcome"]
