"""
FastAPI Application Entry Point

Public-channel order intake for a multi-branch restaurant chain.
Supports both in-memory/Mock collaborators (development) and the SQL store
with Google Maps pricing (staging/production).

Endpoints:
    - POST /api/orders: Submit a web order
    - GET /api/orders/track/{tracking_code}: Public order tracking
    - GET /health: System health check
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from order_intake.core.config import get_settings, setup_logging
from order_intake.core.errors import IntakeError, NotFound
from order_intake.core.timeouts import bounded_read
from order_intake.database import get_engine, init_db
from order_intake.schemas import (
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderCreateResponse,
    OrderTrackingResponse,
)
from order_intake.services import OrderIntake, get_intake_service
from order_intake.services.geo import get_geo_service
from order_intake.services.store import BaseOrderStore, get_order_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Channel: {settings.order_channel}")
    logger.info("=" * 60)

    store = get_order_store()
    if settings.use_real_services:
        await init_db(get_engine())
        logger.info("✅ Database initialized")

        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    geo_service = get_geo_service()
    logger.info(f"✅ Order Store: {store.provider_name}")
    logger.info(f"✅ Geo Service: {geo_service.provider_name}")
    logger.info("✅ Application ready!")

    yield

    logger.info("Shutting down...")
    if settings.use_real_services:
        await get_engine().dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order intake for the public web channel. Prices every order from "
        "the catalog, numbers it per branch and stores it for the kitchen."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# The ordering web app is served from its own origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def bearer_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    """Token of a signed-in customer; anonymous orders carry none."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍔 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    store: BaseOrderStore = Depends(get_order_store),
) -> HealthResponse:
    """Verify the order store and the geo collaborator respond."""
    store_status = "healthy"
    try:
        if not await store.health_check():
            store_status = "unhealthy"
    except Exception as e:
        store_status = f"unhealthy: {str(e)}"
        logger.error(f"Order store health check failed: {e}")

    geo_status = "healthy"
    try:
        if not await get_geo_service().health_check():
            geo_status = "unhealthy"
    except Exception as e:
        geo_status = f"unhealthy: {str(e)}"
        logger.error(f"Geo service health check failed: {e}")

    # Geo problems only degrade delivery pricing
    overall = "healthy" if store_status == "healthy" else "unhealthy"
    if overall == "healthy" and geo_status != "healthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        order_store=store_status,
        geo_service=geo_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderCreateResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Submit Web Order",
)
async def create_order(
    order_data: OrderCreate,
    token: Optional[str] = Depends(bearer_token),
    intake: OrderIntake = Depends(get_intake_service),
) -> OrderCreateResponse:
    """
    Submit an order from the web channel.

    Prices are always taken from the catalog; any price sent by the client
    is ignored. Resubmitting with the same ``idempotency_key`` returns the
    order created the first time.
    """
    result = await intake.submit(order_data, customer_token=token)
    return result.to_response()


@app.get(
    "/api/orders/track/{tracking_code}",
    response_model=OrderTrackingResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Track Order",
)
async def track_order(
    tracking_code: str,
    store: BaseOrderStore = Depends(get_order_store),
) -> OrderTrackingResponse:
    """Public status of an order, looked up by its unguessable tracking code."""
    order = await bounded_read(
        store.get_order_by_tracking_code(tracking_code),
        settings.catalog_timeout_seconds,
        "orders",
    )
    if order is None:
        raise NotFound("Order not found")

    return OrderTrackingResponse(
        order_number=order.order_number,
        status=order.status.value,
        payment_state=order.payment_state.value,
        service_type=order.service_type.value,
        total=order.total,
        estimated_minutes=order.estimated_minutes,
        promised_at=order.promised_at,
        created_at=order.created_at,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
    """Typed rejections keep their status and shape."""
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies are reported like any other validation failure."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "error": f"{location}: {message}" if location else message,
            "kind": "validation",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) if settings.debug else "An unexpected error occurred",
            "kind": "internal",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "order_intake.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
