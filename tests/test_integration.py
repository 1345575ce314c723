import json

import pytest
import stripe

from conftest import CUSTOMER, OTHER_CUSTOMER, create_order, create_profile, login, sign_webhook
from launderer.models import Payment
from launderer.payments import PaymentService
from launderer.rate_limiter import limiter

WEBHOOK_URL = "/api/payments/webhook"


def _mock_intent(mocker, intent_id="pi_123", status="succeeded", charge="ch_123"):
    intent = mocker.Mock()
    intent.id = intent_id
    intent.status = status
    intent.client_secret = f"{intent_id}_secret"
    intent.latest_charge = charge
    return intent


def _event(event_type, intent_id, **fields):
    return json.dumps(
        {
            "id": "evt_test",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": intent_id, "object": "payment_intent", **fields}},
        }
    )


def _post_webhook(client, payload, signature=None):
    return client.post(
        WEBHOOK_URL,
        content=payload,
        headers={"Stripe-Signature": signature or sign_webhook(payload), "Content-Type": "application/json"},
    )


@pytest.fixture
def order(client):
    create_profile(client)
    return create_order(client, serviceType="express")


def test_full_payment_lifecycle_integration(client, order, mocker, db):
    """
    1. Charge (API -> identity provider -> Stripe mocked -> DB)
    2. Webhook success (signed payload -> API -> DB)
    3. Read back the payment
    """
    create = mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker, status="processing"))

    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_card_visa"})

    assert response.status_code == 200
    body = response.json()
    assert body["clientSecret"] == "pi_123_secret"
    assert body["payment"]["status"] == "pending"
    assert body["payment"]["stripe_payment_id"] == "ch_123"
    assert body["payment"]["stripe_payment_intent_id"] == "pi_123"
    assert body["payment"]["amount"] == 40.0

    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 4000
    assert kwargs["customer"] == "cus_existing"
    assert kwargs["payment_method"] == "pm_card_visa"
    assert kwargs["confirm"] is True
    assert kwargs["metadata"]["orderId"] == order["id"]
    assert kwargs["metadata"]["clerkId"] == CUSTOMER.clerk_id

    webhook = _post_webhook(client, _event("payment_intent.succeeded", "pi_123"))
    assert webhook.status_code == 200
    assert webhook.json() == {"received": True}

    payment = client.get(f"/api/payments/{order['id']}").json()["payment"]
    assert payment["status"] == "completed"


def test_immediate_success_marks_completed(client, order, mocker):
    mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker))

    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    assert response.json()["payment"]["status"] == "completed"


def test_second_charge_is_rejected_without_calling_stripe(client, order, mocker, db):
    create = mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker))
    client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    assert response.status_code == 409
    assert response.json()["error"] == "Order already paid"
    assert create.call_count == 1
    assert db.query(Payment).filter_by(order_id=order["id"]).count() == 1


def test_charge_creates_customer_when_metadata_missing(client, order, mocker, identity_client):
    identity_client.get_public_metadata.return_value = None
    customer = mocker.Mock()
    customer.id = "cus_new"
    create_customer = mocker.patch("stripe.Customer.create", return_value=customer)
    create = mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker))

    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    assert response.status_code == 200
    assert create_customer.call_args.kwargs["email"] == CUSTOMER.email
    identity_client.update_public_metadata.assert_called_once_with(CUSTOMER.clerk_id, {"stripeCustomerId": "cus_new"})
    assert create.call_args.kwargs["customer"] == "cus_new"


def test_charge_merges_into_existing_metadata(client, order, mocker, identity_client):
    identity_client.get_public_metadata.return_value = {"role": "customer"}
    customer = mocker.Mock()
    customer.id = "cus_new"
    mocker.patch("stripe.Customer.create", return_value=customer)
    mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker))

    client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    identity_client.update_public_metadata.assert_called_once_with(
        CUSTOMER.clerk_id, {"role": "customer", "stripeCustomerId": "cus_new"}
    )


def test_declined_card_is_recorded_and_surfaced(client, order, mocker, db):
    mocker.patch(
        "stripe.PaymentIntent.create",
        side_effect=stripe.CardError("Your card was declined.", None, "card_declined"),
    )

    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_bad"})

    assert response.status_code == 402
    assert "declined" in response.json()["error"]
    payment = db.query(Payment).filter_by(order_id=order["id"]).one()
    assert payment.status == "failed"
    assert float(payment.amount) == 0
    assert "declined" in payment.error_message


def test_processor_outage_is_recorded_and_surfaced(client, order, mocker, db):
    mocker.patch("stripe.PaymentIntent.create", side_effect=Exception("Stripe Service Unavailable"))

    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    assert response.status_code == 502
    payment = db.query(Payment).filter_by(order_id=order["id"]).one()
    assert payment.status == "failed"
    assert payment.error_message == "Stripe Service Unavailable"


def test_failed_attempt_does_not_block_retry(client, order, mocker):
    mocker.patch("stripe.PaymentIntent.create", side_effect=Exception("timeout"))
    client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker))
    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    assert response.status_code == 200
    assert len(client.get("/api/payments").json()["payments"]) == 2


def test_charge_unknown_or_foreign_order(client, order, mocker):
    create = mocker.patch("stripe.PaymentIntent.create")
    create_profile(client, identity=OTHER_CUSTOMER)

    login(OTHER_CUSTOMER)
    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})

    assert response.status_code == 404
    assert create.call_count == 0


def test_charge_without_profile(client, mocker):
    response = client.post(
        "/api/payments/charge",
        json={"orderId": "6f1c7d0e-6a5f-4f0e-9b43-4a8f2b3a1c11", "paymentMethodId": "pm_1"},
    )
    assert response.status_code == 404


def test_charge_validates_order_id(client):
    response = client.post("/api/payments/charge", json={"orderId": "nope", "paymentMethodId": "pm_1"})
    assert response.status_code == 400


def test_payment_reads_are_owner_scoped(client, order, mocker):
    mocker.patch("stripe.PaymentIntent.create", return_value=_mock_intent(mocker))
    client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})
    create_profile(client, identity=OTHER_CUSTOMER)

    login(OTHER_CUSTOMER)
    assert client.get(f"/api/payments/{order['id']}").status_code == 404
    assert client.get("/api/payments").json()["payments"] == []


# ---------------------------------------------------------------------------
# Webhook reconciliation
# ---------------------------------------------------------------------------


def _pending_payment(client, order, mocker, intent_id="pi_pending"):
    mocker.patch(
        "stripe.PaymentIntent.create",
        return_value=_mock_intent(mocker, intent_id=intent_id, status="processing", charge=None),
    )
    response = client.post("/api/payments/charge", json={"orderId": order["id"], "paymentMethodId": "pm_1"})
    return response.json()["payment"]


def test_webhook_success_is_idempotent(client, order, mocker, db):
    payment = _pending_payment(client, order, mocker)
    payload = _event("payment_intent.succeeded", "pi_pending")

    first = _post_webhook(client, payload)
    second = _post_webhook(client, payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert db.get(Payment, payment["id"]).status == "completed"


def test_webhook_failure_records_message(client, order, mocker, db):
    payment = _pending_payment(client, order, mocker)
    payload = _event(
        "payment_intent.payment_failed", "pi_pending", last_payment_error={"message": "Insufficient funds"}
    )

    response = _post_webhook(client, payload)

    assert response.status_code == 200
    stored = db.get(Payment, payment["id"])
    assert stored.status == "failed"
    assert stored.error_message == "Insufficient funds"


def test_webhook_failure_after_success_keeps_completed(client, order, mocker, db):
    payment = _pending_payment(client, order, mocker)
    _post_webhook(client, _event("payment_intent.succeeded", "pi_pending"))

    _post_webhook(client, _event("payment_intent.payment_failed", "pi_pending", last_payment_error=None))

    assert db.get(Payment, payment["id"]).status == "completed"


def test_webhook_invalid_signature(client, order, mocker, db):
    payment = _pending_payment(client, order, mocker)
    payload = _event("payment_intent.succeeded", "pi_pending")

    response = _post_webhook(client, payload, signature=sign_webhook(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid signature"
    assert db.get(Payment, payment["id"]).status == "pending"


def test_webhook_tampered_body(client, order, mocker, db):
    payment = _pending_payment(client, order, mocker)
    signature = sign_webhook(_event("payment_intent.payment_failed", "pi_pending"))

    response = _post_webhook(client, _event("payment_intent.succeeded", "pi_pending"), signature=signature)

    assert response.status_code == 400
    assert db.get(Payment, payment["id"]).status == "pending"


def test_webhook_missing_signature(client):
    response = client.post(WEBHOOK_URL, content=_event("payment_intent.succeeded", "pi_x"))
    assert response.status_code == 400


def test_webhook_unknown_event_is_acknowledged(client, order, mocker, db):
    payment = _pending_payment(client, order, mocker)

    response = _post_webhook(client, _event("payment_intent.created", "pi_pending"))

    assert response.status_code == 200
    assert db.get(Payment, payment["id"]).status == "pending"


def test_webhook_non_existent_payment(client, mocker):
    """Events for intents we never recorded are acknowledged and ignored."""
    mocker.patch(
        "stripe.Webhook.construct_event",
        return_value={"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_unknown"}}},
    )
    response = client.post(WEBHOOK_URL, content="raw_payload", headers={"Stripe-Signature": "test"})
    assert response.status_code == 200


def test_webhook_is_not_rate_limited(client, monkeypatch):
    monkeypatch.setattr(limiter, "limit", 1)
    payload = _event("payment_intent.created", "pi_x")

    assert client.get("/api/payments").status_code == 200
    assert client.get("/api/payments").status_code == 429
    for _ in range(5):
        assert _post_webhook(client, payload).status_code == 200


def test_reconcile_counts_changes(db):
    service = PaymentService(db)
    assert service.reconcile({"type": "charge.refunded", "data": {"object": {"id": "pi_none"}}}) == 0
