import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import stripe
from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from launderer import config, stripe_service
from launderer.database import get_db, init_db
from launderer.errors import InternalError, LaundererError, ValidationError, WebhookSignatureError
from launderer.payments import PaymentService
from launderer.rate_limiter import rate_limit_middleware
from launderer.routes import router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("stripe").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Happy Launderer API starting up...")
    init_db()
    yield
    logger.info("Happy Launderer API shutting down...")


app = FastAPI(title="Happy Launderer API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(LaundererError)
async def laundry_error_handler(request: Request, exc: LaundererError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Missing Authorization header is an auth failure; everything else is a 400."""
    errors = exc.errors()
    for error in errors:
        if "authorization" in str(error.get("loc", "")).lower():
            return JSONResponse(status_code=401, content={"error": "No authorization token provided"})

    details = [
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in errors
    ]
    logger.info(f"Validation error for {request.url.path}: {details}")
    return JSONResponse(status_code=400, content={"error": "Validation error", "details": details})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=409, content={"error": "Resource already exists"})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# Throttling skips the webhook path
app.middleware("http")(rate_limit_middleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.post(config.WEBHOOK_PATH, include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    # Signature covers the raw bytes, so the body is never parsed before verification
    payload = await request.body()

    if not config.STRIPE_WEBHOOK_SECRET:
        raise InternalError("Webhook secret not configured")
    if not stripe_signature:
        raise WebhookSignatureError("Missing signature")

    try:
        event = stripe_service.construct_event(payload, stripe_signature, config.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        raise ValidationError("Invalid payload") from e
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise WebhookSignatureError("Invalid signature") from e

    PaymentService(db).reconcile(event)
    return {"received": True}


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
