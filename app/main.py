# =============================================================================
# app/main.py - FastAPI Application Entry Point
# =============================================================================
# This is the main entry point for the CentaurOS API.
# It configures the FastAPI application with middleware, routers, and handlers.
#
# Usage:
#   uvicorn app.main:app --reload
# =============================================================================

import asyncio
import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.websocket import websocket_manager, WEBSOCKET_CHANNEL
from app.exceptions import (
    CentaurException,
    centaur_exception_handler,
    validation_exception_handler,
)
from app.routers import (
    health,
    payments,
    webhooks,
    orders,
    milestones,
    retainers,
    timesheets,
    availability,
    offboarding,
    apprenticeship,
    notifications,
)
from app.websocket import routes as websocket_routes

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# Global flag for Redis listener task
_redis_listener_task = None
_shutdown_event = None


async def redis_pubsub_listener():
    """
    Background task that listens to Redis pub/sub and broadcasts to WebSockets.

    Services and Celery workers publish user events to Redis; this
    forwards each one to that user's sockets on this process.
    """
    import redis.asyncio as aioredis

    logger.info("Starting Redis pub/sub listener for WebSocket broadcasts")

    redis_client = None
    pubsub = None
    try:
        redis_client = aioredis.from_url(settings.REDIS_URL)
        pubsub = redis_client.pubsub()
        await pubsub.subscribe(WEBSOCKET_CHANNEL)

        async for message in pubsub.listen():
            if _shutdown_event and _shutdown_event.is_set():
                break

            if message["type"] == "message":
                try:
                    data = json.loads(message["data"])
                    user_id = data.pop("user_id", None)

                    if user_id:
                        await websocket_manager.broadcast(user_id, data)
                        logger.debug(f"Broadcast {data.get('type')} to user {user_id}")

                except json.JSONDecodeError as e:
                    logger.warning(f"Invalid JSON in Redis message: {e}")
                except Exception as e:
                    logger.error(f"Error processing Redis message: {e}")

    except asyncio.CancelledError:
        logger.info("Redis pub/sub listener cancelled")
    except Exception as e:
        logger.error(f"Redis pub/sub listener error: {e}")
    finally:
        try:
            if pubsub is not None:
                await pubsub.unsubscribe(WEBSOCKET_CHANNEL)
            if redis_client is not None:
                await redis_client.close()
        except Exception as e:
            logger.debug(f"Redis listener cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: log config, start the Redis listener when realtime is on
    - Shutdown: stop the listener
    """
    global _redis_listener_task, _shutdown_event

    # Startup
    logger.info(f"Starting CentaurOS API in {settings.ENVIRONMENT} mode")
    logger.info(f"CORS origins: {settings.cors_origins_list}")

    if settings.REALTIME_ENABLED:
        _shutdown_event = asyncio.Event()
        _redis_listener_task = asyncio.create_task(redis_pubsub_listener())
    else:
        logger.info("Realtime disabled; WebSocket events will not be forwarded")

    yield

    # Shutdown
    logger.info("Shutting down CentaurOS API")

    if _shutdown_event:
        _shutdown_event.set()
    if _redis_listener_task:
        _redis_listener_task.cancel()
        try:
            await _redis_listener_task
        except asyncio.CancelledError:
            pass
        _redis_listener_task = None


# Create FastAPI application
app = FastAPI(
    title="CentaurOS API",
    description="""
## Marketplace and Foundry Backend

Buyers hire providers through orders and retainers. Payment is held in
escrow with Stripe and released to the provider when work is approved.

### Key Features

- **Escrow**: Payment is held on order acceptance and released on approval
- **Milestones**: Split an order into separately approved deliveries
- **Retainers**: Weekly hours billed through submitted timesheets
- **Availability**: Provider calendar with blocking and bulk updates
- **Foundry admin**: Member offboarding and apprenticeship OTJT tracking
- **Notifications**: Priority-routed push, SMS, email and in-app delivery
""",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Payments", "description": "Escrow funding, release and refunds"},
        {"name": "Webhooks", "description": "Stripe event receiver"},
        {"name": "Orders", "description": "Order lifecycle actions"},
        {"name": "Milestones", "description": "Milestone deliveries and approval"},
        {"name": "Retainers", "description": "Recurring weekly engagements"},
        {"name": "Timesheets", "description": "Weekly hours against a retainer"},
        {"name": "Availability", "description": "Provider calendar, pricing and capacity"},
        {"name": "Offboarding", "description": "Removing members from a foundry"},
        {"name": "Apprenticeship", "description": "Off-the-job training logs"},
        {"name": "Notifications", "description": "Inbox and delivery preferences"},
        {"name": "WebSocket", "description": "Real-time user updates"},
        {"name": "Health", "description": "API health and readiness checks"},
    ],
)


# =============================================================================
# Middleware
# =============================================================================

# CORS middleware - allows cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(CentaurException)
async def handle_centaur_exception(request: Request, exc: CentaurException):
    """Handle custom CentaurOS exceptions."""
    return await centaur_exception_handler(request, exc)


@app.exception_handler(RequestValidationError)
async def handle_validation_exception(request: Request, exc: RequestValidationError):
    return await validation_exception_handler(request, exc)


@app.exception_handler(Exception)
async def handle_general_exception(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        }
    )


# =============================================================================
# Routers
# =============================================================================

# Health check endpoints (also at /api/health for the container probe)
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(health.router, prefix="/api", tags=["Health"], include_in_schema=False)

# Payment and escrow endpoints
app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])

# Stripe webhooks
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])

# Order lifecycle endpoints
app.include_router(orders.router, prefix="/api/v1/orders", tags=["Orders"])

# Milestone endpoints
app.include_router(milestones.router, prefix="/api/v1", tags=["Milestones"])

# Retainer endpoints
app.include_router(retainers.router, prefix="/api/v1/retainers", tags=["Retainers"])

# Timesheet endpoints
app.include_router(timesheets.router, prefix="/api/v1", tags=["Timesheets"])

# Availability endpoints
app.include_router(availability.router, prefix="/api/v1", tags=["Availability"])

# Offboarding endpoints
app.include_router(offboarding.router, prefix="/api/v1", tags=["Offboarding"])

# Apprenticeship endpoints
app.include_router(apprenticeship.router, prefix="/api/v1/apprenticeship", tags=["Apprenticeship"])

# Notification endpoints
app.include_router(notifications.router, prefix="/api/v1", tags=["Notifications"])

# WebSocket endpoints (Real-time updates)
app.include_router(websocket_routes.router, tags=["WebSocket"])


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint - returns API info.
    """
    return {
        "name": "CentaurOS API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
    }
