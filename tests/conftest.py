import hashlib
import hmac
import os
import time

# Settings are read at import time, so these must be set before the app loads
os.environ["DATABASE_URL"] = "sqlite:///./test_launderer.db"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["JWT_ALGORITHMS"] = "HS256"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"

import pytest
from fastapi.testclient import TestClient

import launderer.auth
from launderer.auth import Identity
from launderer.database import Base, SessionLocal, engine
from launderer.enums import Role
from launderer.identity import get_identity_client
from launderer.main import app as fastapi_app
from launderer.rate_limiter import limiter

CUSTOMER = Identity(clerk_id="user_customer", email="customer@example.com")
OTHER_CUSTOMER = Identity(clerk_id="user_other", email="other@example.com")
DRIVER = Identity(clerk_id="user_driver", email="driver@example.com", role=Role.DRIVER)
OTHER_DRIVER = Identity(clerk_id="user_driver_2", email="driver2@example.com", role=Role.DRIVER)
ADMIN = Identity(clerk_id="user_admin", email="admin@example.com", role=Role.ADMIN)

ADDRESS = {"street": "123 Main St", "city": "Springfield", "state": "IL", "zipCode": "62701"}


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    limiter.reset()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def identity_client(mocker):
    fake = mocker.Mock()
    fake.get_public_metadata.return_value = {"stripeCustomerId": "cus_existing"}
    return fake


@pytest.fixture
def client(identity_client):
    fastapi_app.dependency_overrides[get_identity_client] = lambda: identity_client
    login(CUSTOMER)
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


def login(identity):
    """Make subsequent requests act as ``identity``."""
    fastapi_app.dependency_overrides[launderer.auth.verify_token] = lambda: identity


def create_profile(client, identity=CUSTOMER, **fields):
    login(identity)
    response = client.post("/api/auth/profile", json={"name": "Test User", **fields})
    assert response.status_code == 200
    return response.json()["user"]


def create_order(client, identity=CUSTOMER, **overrides):
    login(identity)
    body = {
        "pickupAddress": ADDRESS,
        "deliveryAddress": ADDRESS,
        "scheduledTime": "2026-10-20T09:00:00Z",
        "serviceType": "standard",
        **overrides,
    }
    response = client.post("/api/orders", json=body)
    assert response.status_code == 201, response.text
    return response.json()["order"]


def sign_webhook(payload: str, secret: str = "whsec_test_secret", timestamp=None) -> str:
    """Build a Stripe-Signature header for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={timestamp},v1={signature}"
