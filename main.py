"""
Storefront API - Application Entry Point
==========================================
FastAPI app initialization, exception handlers, middleware, and router
registration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from config import settings
from config.database import Database
from common.exceptions import StorefrontError, translate_integrity_error

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("storefront.app")

# ==========================================
# Import ALL models so Alembic/Base can see them
# ==========================================
from modules.user.models import User  # noqa: F401
from modules.customer.address_models import Address  # noqa: F401
from modules.catalog.models import Category, Brand, Product, ProductVariant, ProductImage  # noqa: F401
from modules.cart.models import Cart, CartItem  # noqa: F401
from modules.order.models import Order, OrderLineItem, OrderTransaction  # noqa: F401
from modules.wishlist.models import WishlistItem  # noqa: F401

# ==========================================
# Import routers
# ==========================================
from modules.auth.routes import router as auth_router
from modules.catalog.routes import router as catalog_router
from modules.catalog.admin_routes import router as catalog_admin_router
from modules.cart.routes import router as cart_router
from modules.order.routes import router as order_router
from modules.order.admin_routes import router as order_admin_router
from modules.payment.routes import router as payment_router
from modules.wishlist.routes import router as wishlist_router
from modules.customer.routes import router as address_router
from modules.admin.routes import router as admin_router


# ==========================================
# Exception handlers
# ==========================================

async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "path": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse({"error": "Validation failed", "details": details}, status_code=400)


async def integrity_error_handler(request: Request, exc: IntegrityError):
    translated = translate_integrity_error(exc)
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {translated.message}")
    return JSONResponse({"error": translated.message}, status_code=translated.status_code)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ==========================================
# Create App
# ==========================================

def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the application. Tests pass their own Database; otherwise one is made from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database(settings.DATABASE_URL, echo=settings.DEBUG)
        # Auto-create any missing tables (safe for existing tables)
        db.create_all()
        app.state.database = db
        logger.info("Storefront API started")
        yield
        db.dispose()
        logger.info("Storefront API stopped")

    app = FastAPI(
        title="Storefront API",
        description="Fashion e-commerce backend: catalog, cart, checkout and payments",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Usable before the lifespan runs (e.g. TestClient without a context manager)
    if database is not None:
        app.state.database = database

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(catalog_router)
    app.include_router(catalog_admin_router)
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(order_admin_router)
    app.include_router(payment_router)
    app.include_router(wishlist_router)
    app.include_router(address_router)
    app.include_router(admin_router)

    # ==========================================
    # Health check
    # ==========================================
    @app.get("/health")
    async def health():
        return {"status": "ok", "version": settings.APP_VERSION}

    return app


app = create_app()
