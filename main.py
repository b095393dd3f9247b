"""
Main FastAPI application entry point.
"""
import sys
import time
import logging
import uuid
import warnings
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from starlette import status
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

# Load environment variables
load_dotenv()

# Add project root to path
ROOT_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT_DIR))

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    force=True
)

logger = logging.getLogger(__name__)

from config import settings
from errors import LearnHubError, status_code_for
from alembic_runner import run_migrations
from deps import get_db
from Payment_module import razorpay_service, stripe_service

# Routers (each one imports the models it needs)
from Coupon_module.Coupon_router import router as coupon_router
from Cart_module.Cart_router import router as cart_router
from Orders_module.Order_router import router as order_router
from Payment_module.Payment_router import router as payment_router
from Enrollment_module.Enrollment_router import router as enrollment_router
from Notification_module.Notification_router import router as notification_router


def _status_category(status_code: int):
    if status_code < 300:
        return "✅", "SUCCESS"
    if status_code < 400:
        return "⚠️", "REDIRECT"
    if status_code < 500:
        return "❌", "CLIENT_ERROR"
    return "💥", "SERVER_ERROR"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request with status and duration. Each request gets an
    X-Request-ID (the caller's, when sent) so gateway retries can be traced.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        client_ip = request.client.host if request.client else "unknown"
        path = request.url.path
        start_time = time.perf_counter()

        logger.info(f"→ [{request_id}] {request.method} {path} | IP: {client_ip}")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"💥 [{request_id}] {request.method} {path} | Status: 500 (SERVER_ERROR) | "
                f"Error: {e} | Duration: {time.perf_counter() - start_time:.3f}s"
            )
            raise

        emoji, category = _status_category(response.status_code)
        logger.info(
            f"{emoji} [{request_id}] {request.method} {path} | "
            f"Status: {response.status_code} ({category}) | "
            f"Duration: {time.perf_counter() - start_time:.3f}s | IP: {client_ip}"
        )
        response.headers["X-Request-ID"] = request_id
        return response


def initialize_database():
    """
    Bring the schema up to date with Alembic.
    For a fresh local database, `python create_all_tables.py` works too.
    """
    try:
        logger.info("Running database migrations...")
        run_migrations()
        logger.info("Database migrations completed successfully")
    except OperationalError as e:
        logger.error(f"Failed to connect to database during migrations: {e}")
        logger.warning("Migrations will be retried on next startup")
    except Exception as e:
        logger.error(f"Unexpected error during migrations: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown."""
    logger.info("Starting application...")
    initialize_database()
    logger.info("Application started successfully")
    yield
    logger.info("Application shutdown complete")


app = FastAPI(
    title="LearnHub API",
    version="1.0.0",
    lifespan=lifespan
)


def _format_validation_errors(exc):
    """Return consistent error structure for 422 responses."""
    detail_list = []
    errors = exc.errors() if hasattr(exc, "errors") else []

    for err in errors:
        loc = err.get("loc", [])
        source = loc[0] if loc else "body"
        field = loc[-1] if len(loc) > 1 else loc[0] if loc else None
        detail_list.append({
            "source": source,
            "field": field,
            "message": err.get("msg"),
            "type": err.get("type")
        })
    return detail_list


@app.exception_handler(LearnHubError)
async def learnhub_exception_handler(request: Request, exc: LearnHubError):
    """Domain errors carry their own message and structured details."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "error",
            "message": exc.message,
            "details": exc.details
        }
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle FastAPI request validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "message": "Request validation failed.",
            "details": _format_validation_errors(exc)
        }
    )


@app.exception_handler(ValidationError)
async def pydantic_validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "message": "Validation failed.",
            "details": _format_validation_errors(exc)
        }
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: never leak internals in production."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    message = "Internal server error" if settings.is_production else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "message": message, "details": {}}
    )


# CORS configuration
ALLOWED_ORIGINS = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()] or ["*"]
if ALLOWED_ORIGINS == ["*"]:
    warnings.warn("CORS is set to allow all origins. This is not recommended for production.")

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization", "Content-Type", "X-Requested-With", "X-Request-ID",
        "Stripe-Signature", "X-Razorpay-Signature",
    ],
    expose_headers=["X-Request-ID"],
)

app.include_router(coupon_router)
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(enrollment_router)
app.include_router(notification_router)


@app.get("/")
def root():
    """Root endpoint with API information."""
    return {
        "status": "success",
        "message": "LearnHub API",
        "version": "1.0.0",
        "endpoints": {
            "coupons": "/coupons",
            "cart": "/cart",
            "orders": "/orders",
            "payments": "/payments",
            "enrollments": "/enrollments",
            "notifications": "/notifications"
        },
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Liveness plus a database round trip. Gateway flags only say whether
    credentials are configured; no call is made to Stripe or Razorpay.
    """
    try:
        db.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as e:
        logger.error(f"Health check database query failed: {e}")
        database_ok = False

    body = {
        "status": "healthy" if database_ok else "degraded",
        "service": "LearnHub API",
        "database": "ok" if database_ok else "unavailable",
        "payments": {
            "stripe": stripe_service.is_configured(),
            "razorpay": razorpay_service.is_configured(),
            "manual_confirmation": settings.allow_manual_payment,
        },
        "base_currency": settings.BASE_CURRENCY,
        "supported_currencies": settings.supported_currencies,
    }
    return JSONResponse(status_code=200 if database_ok else 503, content=body)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8030,
        reload=False,
        log_level="info",
        access_log=True,
        use_colors=True
    )
