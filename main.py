"""
CafePreorder - Application Entry Point
=======================================
FastAPI app initialization, error handlers, background jobs and
router registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from config.database import SessionLocal, Base, engine
from common.exceptions import CafePreorderError, PersistenceError, ValidationError

logging.getLogger("cafepreorder").setLevel(settings.LOG_LEVEL)
logger = logging.getLogger("cafepreorder.app")
scheduler_logger = logging.getLogger("cafepreorder.scheduler")


# ==========================================
# Import ALL models so Alembic/Base can see them
# ==========================================
from modules.user.models import Profile  # noqa: F401, E402
from modules.admin.models import SystemSetting  # noqa: F401, E402
from modules.canteen.models import Canteen  # noqa: F401, E402
from modules.catalog.models import MenuItem  # noqa: F401, E402
from modules.cart.models import CartItem  # noqa: F401, E402
from modules.order.models import Order, OrderItem, OrderStatusLog  # noqa: F401, E402
from modules.sync.models import ChangeLog  # noqa: F401, E402

# ==========================================
# Import routers
# ==========================================
from modules.auth.routes import router as auth_router  # noqa: E402
from modules.canteen.routes import router as canteen_router  # noqa: E402
from modules.catalog.admin_routes import router as catalog_admin_router  # noqa: E402
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.order.routes import router as order_router  # noqa: E402
from modules.order.admin_routes import router as order_admin_router  # noqa: E402
from modules.payment.routes import router as payment_router  # noqa: E402
from modules.admin.routes import router as admin_router  # noqa: E402
from modules.sync.routes import router as sync_router  # noqa: E402


# ==========================================
# Background Scheduler: Expired Order Cleanup
# ==========================================
def _cleanup_expired_orders():
    """Background job: cancel pending orders nobody paid for."""
    db = SessionLocal()
    try:
        from modules.order.service import order_service
        order_service.release_expired_orders(db)
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Cleanup error: {e}")
    finally:
        db.close()


scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    scheduler.add_job(_cleanup_expired_orders, 'interval', seconds=60, id='expired_orders',
                      max_instances=1, coalesce=True)
    scheduler.start()
    scheduler_logger.info("Background scheduler started (expired orders: 60s)")
    yield
    scheduler.shutdown()
    scheduler_logger.info("Background scheduler stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="CafePreorder",
    description="Canteen pre-ordering: carts, orders, payments and kitchen flow",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ==========================================
# Exception handlers
# ==========================================
@app.exception_handler(CafePreorderError)
async def business_error_handler(request: Request, exc: CafePreorderError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else (first.get("msg") or "Invalid request.")
    return JSONResponse(ValidationError(message).to_dict(), status_code=ValidationError.status_code)


@app.exception_handler(OperationalError)
async def store_unavailable_handler(request: Request, exc: OperationalError):
    logger.error(f"{request.method} {request.url.path}: database unavailable: {exc.orig}")
    err = PersistenceError()
    return JSONResponse(err.to_dict(), status_code=err.status_code)


# ==========================================
# Register Routers
# ==========================================
app.include_router(auth_router)
app.include_router(canteen_router)
app.include_router(catalog_admin_router)
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(order_admin_router)
app.include_router(payment_router)
app.include_router(admin_router)
app.include_router(sync_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
