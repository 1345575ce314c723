import stripe

from launderer import config

stripe.api_key = config.STRIPE_SECRET_KEY


def create_customer(email: str, clerk_id: str):
    return stripe.Customer.create(
        email=email,
        metadata={"clerkId": clerk_id},
    )


def charge(amount: int, currency: str, customer_id: str, payment_method_id: str, metadata: dict):
    """Create and confirm a PaymentIntent in one call; amount is in cents."""
    return stripe.PaymentIntent.create(
        amount=amount,
        currency=currency,
        customer=customer_id,
        payment_method=payment_method_id,
        confirm=True,
        automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
        metadata=metadata,
    )


def charge_id(intent):
    """The Charge ID behind a PaymentIntent (distinct from the intent's own ID)."""
    latest = getattr(intent, "latest_charge", None)
    if latest is None or isinstance(latest, str):
        return latest
    return latest.id


def construct_event(payload: bytes, signature: str, secret: str):
    return stripe.Webhook.construct_event(payload, signature, secret)
