import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app import app
from core.dependencies import get_catalog, get_gateways, get_onboarding
from core.security import create_access_token
from database import get_db
from database.models import Invoice, Payment
from tests.fakes import btcpay_signature, stripe_signature

ADMIN = {"Authorization": "Bearer " + create_access_token({"sub": "admin@academy.org", "is_admin": True})}


def _dec(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def client(database, catalog, gateways, onboarding):
    def override_get_db():
        session = database.get_session_direct()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_gateways] = lambda: gateways
    app.dependency_overrides[get_onboarding] = lambda: onboarding
    yield TestClient(app)
    app.dependency_overrides.clear()


def _signup(client, **kwargs):
    body = {"email": "ana@academy.org", "full_name": "Ana Lima", "payment_method": "btcpay"}
    body.update(kwargs)
    response = client.post("/students/", json=body, headers={"cf-ipcountry": "AR"})
    assert response.status_code == 201, response.text
    data = response.json()
    data["token"] = data["profile_link"].split("token=")[1]
    return data


def _post_btcpay(client, payload, secret="btcpay-test-secret"):
    body = json.dumps(payload).encode()
    return client.post(
        "/payments/btcpay_webhooks", content=body,
        headers={"btcpay-sig": btcpay_signature(body, secret), "content-type": "application/json"},
    )


# ==================== HEALTH / PRICING ====================

def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_pricing_by_country(client):
    response = client.get("/payments/pricing", params={"country": "es"})

    data = response.json()
    assert data["plan_code"] == "europe"
    assert data["country"] == "ES"
    assert _dec(data["signup"]) == Decimal("150")
    assert data["global_plan"]["plan_code"] == "global"
    assert _dec(data["global_plan"]["signup"]) == Decimal("200")
    assert client.get("/payments/pricing").json()["plan_code"] == "global"


# ==================== STUDENTS ====================

def test_signup_uses_geo_header_and_opens_invoice(client):
    data = _signup(client)

    assert data["student"]["country"] == "AR"
    assert _dec(data["invoice"]["amount"]) == Decimal("100")
    assert data["invoice"]["payment_method"] == "btcpay"

    state = client.get("/students/", params={"token": data["token"]}).json()
    assert state["plan_code"] == "latam"
    assert _dec(state["balance"]) == Decimal("-100")
    assert state["total_charges_not_invoiced_yet"] is None
    assert len(state["invoices"]) == 1
    assert [c["kind"] for c in state["unpaid_charges"]] == ["subscription"]


def test_signup_validation_errors(client):
    bad_country = client.post("/students/", json={
        "email": "ana@academy.org", "full_name": "Ana Lima", "country": "Argentina",
    })
    bad_email = client.post("/students/", json={"email": "nope", "full_name": "Ana Lima"})

    assert bad_country.status_code == 422
    assert bad_email.status_code == 422


def test_duplicate_signup_maps_to_422(client):
    _signup(client)

    response = client.post("/students/", json={"email": "ana@academy.org", "full_name": "Ana Lima"})

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


def test_invalid_session_token(client):
    assert client.get("/students/", params={"token": "nope"}).status_code == 401
    assert client.get("/students/").status_code == 422


def test_gateway_failure_maps_to_502(client, btcpay_gateway):
    data = _signup(client)
    btcpay_gateway.fail = True

    response = client.post("/students/pay_now", params={"token": data["token"]})

    assert response.status_code == 502
    assert response.json()["error"] == "GatewayError"


def test_change_payment_method(client, stripe_gateway):
    data = _signup(client)

    response = client.post("/students/payment_method", params={"token": data["token"]}, json={"payment_method": "stripe"})
    pay_now = client.post("/students/pay_now", params={"token": data["token"]})

    assert response.json() == {"payment_method": "stripe"}
    assert pay_now.json()["invoice"]["payment_method"] == "stripe"
    assert len(stripe_gateway.requests) == 1


def test_payment_reminder(client, email):
    data = _signup(client)

    response = client.post("/students/payment_reminder", params={"token": data["token"]})

    assert response.json()["sent"] is True
    assert email.sent[-1]["template"] == "payment_link"


# ==================== WEBHOOKS ====================

def test_btcpay_webhook_settles_once(client, db_session, email):
    data = _signup(client)
    external_id = data["invoice"]["external_id"]

    first = _post_btcpay(client, {"type": "InvoiceSettled", "invoiceId": external_id})
    second = _post_btcpay(client, {"type": "InvoiceSettled", "invoiceId": external_id, "isRedelivery": True})

    assert first.status_code == 200
    assert first.json()["payment_id"] is not None
    assert second.json() == {"received": True, "payment_id": None}
    assert db_session.query(Payment).count() == 1

    state = client.get("/students/", params={"token": data["token"]}).json()
    assert _dec(state["balance"]) == Decimal("0")
    assert state["unpaid_charges"] == []
    assert [m["template"] for m in email.sent] == ["welcome"]

    link = client.get("/students/community_link", params={"token": data["token"]})
    assert link.status_code == 200


def test_btcpay_webhook_rejects_bad_signature_and_payload(client):
    bad_signature = _post_btcpay(client, {"type": "InvoiceSettled", "invoiceId": "x"}, secret="wrong")
    malformed = _post_btcpay(client, {"invoiceId": "x"})

    assert bad_signature.status_code == 400
    assert malformed.status_code == 422


def test_stripe_webhook_records_payment(client, db_session):
    data = _signup(client, payment_method="stripe")
    db_session.expire_all()
    customer = db_session.query(Invoice).one().student.stripe_customer_id
    payload = {
        "id": "evt_1",
        "object": "event",
        "type": "invoice.payment_succeeded",
        "data": {"object": {"id": "in_1", "customer": customer, "amount_paid": 10000, "paid": True}},
    }
    body = json.dumps(payload).encode()

    response = client.post(
        "/payments/stripe_events", content=body,
        headers={"stripe-signature": stripe_signature(body, "whsec_test"), "content-type": "application/json"},
    )
    unsigned = client.post("/payments/stripe_events", content=body)

    assert response.status_code == 200
    assert response.json()["payment_id"] is not None
    assert unsigned.status_code == 400
    state = client.get("/students/", params={"token": data["token"]}).json()
    assert _dec(state["balance"]) == Decimal("0")


# ==================== ADMIN ====================

def test_admin_requires_admin_token(client):
    user = {"Authorization": "Bearer " + create_access_token({"sub": "ana@academy.org"})}

    assert client.post("/admin/payments/from_invoice", params={"invoice_id": 1}).status_code in (401, 403)
    assert client.post("/admin/payments/from_invoice", params={"invoice_id": 1}, headers=user).status_code == 403
    assert client.post(
        "/admin/payments/from_invoice", params={"invoice_id": 1},
        headers={"Authorization": "Bearer garbage"},
    ).status_code == 401


def test_admin_settles_invoice(client):
    data = _signup(client)
    invoice_id = data["invoice"]["id"]

    first = client.post("/admin/payments/from_invoice", params={"invoice_id": invoice_id}, headers=ADMIN)
    second = client.post("/admin/payments/from_invoice", params={"invoice_id": invoice_id}, headers=ADMIN)
    missing = client.post("/admin/payments/from_invoice", params={"invoice_id": 999}, headers=ADMIN)

    assert first.json()["already_settled"] is False
    assert _dec(first.json()["payment"]["amount"]) == Decimal("100")
    assert second.json() == {"payment": None, "already_settled": True}
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFoundError"


def test_admin_billing_tick(client):
    data = _signup(client)
    next_date = client.get("/students/", params={"token": data["token"]}).json()["next_invoicing_date"]

    first = client.post("/admin/billing/tick", params={"date": next_date}, headers=ADMIN)
    again = client.post("/admin/billing/tick", params={"date": next_date}, headers=ADMIN)
    invalid = client.post("/admin/billing/tick", params={"date": "31/01/2026"}, headers=ADMIN)

    assert first.json()["created"] == 1
    assert again.json()["created"] == 0
    assert invalid.status_code == 422
    state = client.get("/students/", params={"token": data["token"]}).json()
    assert _dec(state["balance"]) == Decimal("-130")
    assert _dec(state["invoices"][0]["amount"]) == Decimal("130")


def test_admin_guest_account_and_degree(client):
    created = client.post("/admin/students", headers=ADMIN, json={
        "email": "guest@academy.org", "full_name": "Guest Lecturer", "country": "ES",
    })
    student_id = created.json()["id"]
    link = client.post(f"/admin/students/{student_id}/profile_link", headers=ADMIN).json()["url"]
    degree = client.post(f"/admin/students/{student_id}/degrees", headers=ADMIN, json={"title": "Rust"})

    assert created.status_code == 201
    assert degree.status_code == 201
    assert _dec(degree.json()["price"]) == Decimal("0")
    state = client.get("/students/", params={"token": link.split("token=")[1]}).json()
    assert state["plan_code"] == "guest"
    assert state["invoices"] == []


def test_admin_retry_onboarding(client, lms):
    lms.fail = True
    data = _signup(client)
    client.post("/admin/payments/from_invoice", params={"invoice_id": data["invoice"]["id"]}, headers=ADMIN)
    student_id = data["student"]["id"]

    lms.fail = False
    retried = client.post(f"/admin/students/{student_id}/onboarding", headers=ADMIN)
    again = client.post(f"/admin/students/{student_id}/onboarding", headers=ADMIN)

    assert retried.json() == {"lms": True, "welcome_email": True}
    assert again.status_code == 422
