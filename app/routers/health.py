# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Health endpoints for monitoring and the container healthcheck.
# Mounted at /api/v1 and /api (the container probes GET /api/health).
# =============================================================================

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.config import settings
from app.dependencies import client_ip
from lib.rate_limit import enforce_rate_limit
from lib.utils import utc_now

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    environment: str
    version: str


class ChecksResponse(BaseModel):
    """Individual dependency checks."""
    database: str
    payments: str


class ReadinessResponse(BaseModel):
    status: str
    checks: ChecksResponse
    timestamp: str


class LivenessResponse(BaseModel):
    status: str
    timestamp: str


def health_rate_limit(ip: str = Depends(client_ip)) -> None:
    enforce_rate_limit("health", ip)


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse, dependencies=[Depends(health_rate_limit)])
async def health_check():
    """
    Health check endpoint.

    Always healthy while the process serves requests; no dependency calls.
    """
    return HealthResponse(
        status="healthy",
        timestamp=utc_now().isoformat(),
        environment=settings.ENVIRONMENT,
        version=settings.APP_VERSION,
    )


@router.get("/health/ready", response_model=ReadinessResponse, dependencies=[Depends(health_rate_limit)])
async def readiness_check():
    """
    Readiness check endpoint.

    Checks database connectivity and that Stripe is configured.
    """
    from lib.supabase_client import SupabaseClient

    checks = ChecksResponse(database="unknown", payments="unknown")

    try:
        client = SupabaseClient.get_client()
        client.table("orders").select("id").limit(1).execute()
        checks.database = "healthy"
    except Exception as e:
        checks.database = f"unhealthy: {str(e)[:50]}"

    checks.payments = "configured" if settings.STRIPE_SECRET_KEY else "not configured"

    ready = checks.database == "healthy" and checks.payments == "configured"
    return ReadinessResponse(
        status="ready" if ready else "degraded",
        checks=checks,
        timestamp=utc_now().isoformat(),
    )


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check():
    """Process liveness for restart decisions."""
    return LivenessResponse(
        status="alive",
        timestamp=utc_now().isoformat(),
    )
