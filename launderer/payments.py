"""Payment service - charging orders and reconciling Stripe webhook events"""

import logging
from decimal import Decimal

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from launderer import config, pricing, stripe_service
from launderer.auth import Identity, find_user
from launderer.enums import PaymentStatus
from launderer.errors import ConflictError, ExternalServiceError, NotFoundError
from launderer.identity import IdentityProviderClient, merge_metadata
from launderer.models import Order, Payment
from launderer.schemas import PaymentCharge

logger = logging.getLogger(__name__)

CUSTOMER_ID_KEY = "stripeCustomerId"

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class PaymentService:
    def __init__(self, db: Session, identity_client: IdentityProviderClient = None):
        self.db = db
        self.identity_client = identity_client

    def charge(self, identity: Identity, data: PaymentCharge) -> tuple[Payment, str]:
        """Charge an order's price to a payment method.

        Returns the local payment record and the PaymentIntent client secret.
        Failed attempts are recorded before the error is raised.
        """
        user = find_user(self.db, identity)
        if user is None:
            raise NotFoundError("User not found")

        order_id = str(data.orderId)
        order = self.db.query(Order).filter(Order.id == order_id, Order.user_id == user.id).first()
        if order is None:
            raise NotFoundError("Order not found")

        already_paid = (
            self.db.query(Payment)
            .filter(Payment.order_id == order.id, Payment.status == PaymentStatus.COMPLETED.value)
            .first()
        )
        if already_paid:
            raise ConflictError("Order already paid")

        user_id = user.id
        try:
            customer_id = self._customer_id(identity)
            intent = stripe_service.charge(
                amount=pricing.to_minor_units(order.price),
                currency=config.PAYMENT_CURRENCY,
                customer_id=customer_id,
                payment_method_id=data.paymentMethodId,
                metadata={"orderId": order_id, "userId": user_id, "clerkId": identity.clerk_id},
            )
        except Exception as e:
            message = _short_message(e)
            logger.error(f"Payment for order {order_id} failed: {message}")
            self._record_failure(order_id, user_id, data.paymentMethodId, message)
            status_code = 402 if isinstance(e, stripe.CardError) else None
            raise ExternalServiceError(f"Payment failed: {message}", status_code=status_code) from e

        payment = Payment(
            order_id=order_id,
            user_id=user_id,
            stripe_payment_id=stripe_service.charge_id(intent),
            stripe_payment_intent_id=intent.id,
            amount=order.price,
            status=(
                PaymentStatus.COMPLETED.value if intent.status == "succeeded" else PaymentStatus.PENDING.value
            ),
            payment_method_id=data.paymentMethodId,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"Payment {payment.id} recorded for order {order_id} ({payment.status})")
        return payment, intent.client_secret

    def get_payment(self, identity: Identity, order_id: str) -> Payment:
        """The latest payment attempt for one of the caller's orders."""
        user = find_user(self.db, identity)
        if user is None:
            raise NotFoundError("User not found")
        payment = (
            self.db.query(Payment)
            .filter(Payment.order_id == order_id, Payment.user_id == user.id)
            .order_by(Payment.created_at.desc())
            .first()
        )
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def list_payments(self, identity: Identity) -> list[Payment]:
        user = find_user(self.db, identity)
        if user is None:
            return []
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == user.id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    def reconcile(self, event) -> int:
        """Apply a verified webhook event. Returns how many payments changed."""
        event_type = event["type"]
        intent = event["data"]["object"]
        payments = self.db.query(Payment).filter(Payment.stripe_payment_intent_id == intent["id"]).all()

        changed = 0
        if event_type == PAYMENT_SUCCEEDED:
            for payment in payments:
                if payment.status != PaymentStatus.COMPLETED.value:
                    payment.status = PaymentStatus.COMPLETED.value
                    changed += 1
            logger.info(f"PaymentIntent succeeded: {intent['id']}")
        elif event_type == PAYMENT_FAILED:
            error = _field(intent, "last_payment_error") or {}
            for payment in payments:
                # a late failure event never undoes a settled payment
                if payment.status == PaymentStatus.PENDING.value:
                    payment.status = PaymentStatus.FAILED.value
                    payment.error_message = _field(error, "message")
                    changed += 1
            logger.info(f"PaymentIntent failed: {intent['id']}")
        else:
            logger.info(f"Unhandled event type {event_type}")
            return 0

        if changed:
            self.db.commit()
        return changed

    def _customer_id(self, identity: Identity) -> str:
        metadata = self.identity_client.get_public_metadata(identity.clerk_id)
        customer_id = (metadata or {}).get(CUSTOMER_ID_KEY)
        if customer_id:
            return customer_id

        customer = stripe_service.create_customer(identity.email, identity.clerk_id)
        self.identity_client.update_public_metadata(
            identity.clerk_id, merge_metadata(metadata, **{CUSTOMER_ID_KEY: customer.id})
        )
        logger.info(f"Created Stripe customer {customer.id} for {identity.clerk_id}")
        return customer.id

    def _record_failure(self, order_id: str, user_id: str, payment_method_id: str, message: str) -> None:
        try:
            self.db.add(
                Payment(
                    order_id=order_id,
                    user_id=user_id,
                    amount=Decimal("0"),
                    status=PaymentStatus.FAILED.value,
                    payment_method_id=payment_method_id,
                    error_message=message,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Failed to log payment error for order {order_id}")


def _field(obj, key):
    """Read a key from a dict or StripeObject, None when absent."""
    try:
        return obj[key]
    except KeyError:
        return None


def _short_message(error: Exception) -> str:
    message = getattr(error, "user_message", None) or str(error) or error.__class__.__name__
    return message[:200]
