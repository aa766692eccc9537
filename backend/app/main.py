"""FastAPI application entry point."""
import logging
import time
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, settings as default_settings
from app.database import Base, StorageUnavailable, build_engine, build_session_factory
from app.logging_config import setup_logging

# Import routers
from app.routers import auth, group_orders, order_items, products, system

# Import all models so Base.metadata knows about them
from app.models.user import User                  # noqa: F401
from app.models.product import Product            # noqa: F401
from app.models.group_order import GroupOrder     # noqa: F401
from app.models.order_item import OrderItem       # noqa: F401

request_logger = logging.getLogger("app.request")
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the app together with the storage it owns."""
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Group Orders",
        description="Shared group ordering with per-participant cost splitting",
        version="0.1.0",
    )
    app.state.settings = settings
    app.state.engine = build_engine(settings.DATABASE_URL)
    app.state.session_factory = build_session_factory(app.state.engine)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        message = "%s %s status=%d %dms"
        args = (request.method, request.url.path, response.status_code, duration_ms)
        if response.status_code >= 500:
            request_logger.error(message, *args)
        elif response.status_code >= 400:
            request_logger.warning(message, *args)
        else:
            request_logger.info(message, *args)
        return response

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    # Register routers
    app.include_router(system.router, prefix="/api/health", tags=["System"])
    app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
    app.include_router(auth.oauth_router, prefix="/api/oauth", tags=["Auth"])
    if not settings.oauth_configured:
        logger.info("OAuth not configured; enabling development login at /api/dev/login")
        app.include_router(auth.dev_router, prefix="/api/dev", tags=["Auth"])
    app.include_router(products.router, prefix="/api/products", tags=["Products"])
    app.include_router(group_orders.router, prefix="/api/group-orders", tags=["GroupOrders"])
    app.include_router(order_items.router, prefix="/api/order-items", tags=["OrderItems"])

    @app.on_event("startup")
    def on_startup():
        """Create database tables on startup (for SQLite dev mode)."""
        if app.state.engine is not None and settings.DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=app.state.engine)

    @app.on_event("shutdown")
    def on_shutdown():
        if app.state.engine is not None:
            app.state.engine.dispose()

    return app


app = create_app()
