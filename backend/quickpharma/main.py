"""
QuickPharmaPlus Backend: multi-branch online pharmacy.

ARCHITECTURE:
- FastAPI routers under /api, one per business area
- SQLAlchemy session per request; services own the business rules
- Background scheduler for prescription plan emails and expiry sweeps
- Web frontend authenticates with an httpOnly cookie or a Bearer token

SAFETY MODEL:
- Every staff endpoint is gated by role; non-admin staff see one branch only
- Customers may only act on their own carts, orders and prescriptions
- Stock is consumed first-expiry-first-out inside the order transaction
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from quickpharma.api.routes import (
    auth, cart, catalog, checkout, dashboards, health, inventory, lookups,
    orders, plans, prescriptions, reports, supplier_orders,
)
from quickpharma.core.config import settings
from quickpharma.core.exceptions import register_exception_handlers
from quickpharma.core.rate_limiter import RateLimitMiddleware
from quickpharma.db.init_db import init_db
from quickpharma.tasks.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Create tables and seed reference data
    2. Start the background scheduler (plan emails, prescription expiry)

    Shutdown:
    1. Stop the scheduler
    """
    print("[*] Initializing database...")
    init_db()
    print("[OK] Database initialized")

    print("[*] Starting background scheduler...")
    start_scheduler()

    yield

    stop_scheduler()


app = FastAPI(
    title="QuickPharmaPlus API",
    description="Online pharmacy: catalog, cart, prescriptions, delivery and branch operations.",
    version="1.0.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# SECURITY: Trust only specific hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],
    max_age=600,
    expose_headers=["Content-Type", "Content-Disposition"],
)

# SECURITY: Rate limiting to prevent brute force and DoS attacks
app.add_middleware(RateLimitMiddleware)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data:; font-src 'self'; connect-src 'self';"
    )
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


app.include_router(auth.router, prefix="/api/Auth", tags=["auth"])
app.include_router(lookups.router, prefix="/api", tags=["lookups"])
app.include_router(catalog.router, prefix="/api", tags=["catalog"])
app.include_router(inventory.router, prefix="/api", tags=["inventory"])
app.include_router(cart.router, prefix="/api", tags=["cart"])
app.include_router(health.router, prefix="/api", tags=["health-profile"])
app.include_router(checkout.router, prefix="/api", tags=["checkout"])
app.include_router(orders.router, prefix="/api", tags=["orders"])
app.include_router(prescriptions.router, prefix="/api", tags=["prescriptions"])
app.include_router(plans.router, prefix="/api", tags=["prescription-plans"])
app.include_router(supplier_orders.router, prefix="/api", tags=["supplier-orders"])
app.include_router(reports.router, prefix="/api", tags=["reports"])
app.include_router(dashboards.router, prefix="/api", tags=["dashboards"])


@app.get("/health")
def health_check():
    return {"status": "ok", "scheduler": settings.PLAN_EMAIL_SCHEDULER_ENABLED}
