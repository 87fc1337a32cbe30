"""
Academy Billing API - Main Application

Subscription billing for students:
- /students/...   → Signup, billing state, pay now (session token)
- /payments/...   → Gateway webhooks, public pricing
- /admin/...      → Manual settlement, billing tick, onboarding (admin JWT)
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from core.config import settings
from core.dependencies import get_catalog, get_gateways, get_onboarding
from core.errors import BillingError
from database import db, init_db
from database.models import PaymentMethod
from routers import admin_router, payments_router, students_router
from services.scheduler import BillingScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("🚀 Starting Academy Billing API...")

    try:
        init_db()
        logger.info("✅ Database initialized")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        raise

    if settings.stripe_enabled:
        # InconsistentPriceError aborts startup
        get_gateways().for_method(PaymentMethod.stripe).validate_prices(get_catalog())
        logger.info("✅ Stripe prices validated")
    else:
        logger.warning("Stripe is not configured, skipping price validation")

    scheduler = BillingScheduler(
        db.get_session_direct, get_catalog(), get_gateways(), get_onboarding(),
        interval_seconds=settings.billing_tick_seconds,
    )
    scheduler_task = asyncio.create_task(scheduler.run())
    logger.info("📅 Billing scheduler started")

    logger.info("✅ Academy Billing API started successfully!")

    yield

    # Shutdown
    scheduler.stop()
    scheduler_task.cancel()
    logger.info("👋 Shutting down Academy Billing API...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="""
    Subscription billing and payment reconciliation for students.

    * **Students** - Signup, balance, invoices, payment method
    * **Payments** - Stripe and BTCPay webhooks, pricing
    * **Admin** - Manual settlement, monthly tick, onboarding
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Billing errors carry their own status code
@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "error": exc.__class__.__name__,
        }
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc) if settings.debug else "Internal server error",
            "error": "InternalError",
        }
    )


# ==================== HEALTH ====================

@app.get("/", tags=["Health"])
async def root():
    return {
        "message": settings.app_name,
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    from sqlalchemy import text
    try:
        with db.get_session() as session:
            session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)}
        )


# ==================== ROUTES ====================

app.include_router(students_router, prefix="/students", tags=["Students"])
app.include_router(payments_router, prefix="/payments", tags=["Payments"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
