import os
from pathlib import Path

from dotenv import load_dotenv

# Force-load .env from the project root (reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL")

# Identity provider (Clerk). Session tokens are JWTs; JWT_SECRET holds either the
# shared secret (HS256) or the PEM public key (RS256).
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHMS = [a.strip() for a in os.getenv("JWT_ALGORITHMS", "HS256").split(",") if a.strip()]
CLERK_API_URL = os.getenv("CLERK_API_URL", "https://api.clerk.com/v1")
CLERK_SECRET_KEY = os.getenv("CLERK_SECRET_KEY")

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")

# HTTP
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
WEBHOOK_PATH = "/api/payments/webhook"

# Fixed-window throttling for /api/ traffic (webhook excluded)
RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))

# Orders
ENFORCE_STATUS_TRANSITIONS = _flag("ENFORCE_STATUS_TRANSITIONS", "false")
DEFAULT_ORDER_PAGE_SIZE = 50
MAX_ORDER_PAGE_SIZE = 100

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
