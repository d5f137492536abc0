"""
Health and readiness endpoints.

  GET /health       -- Liveness probe (always returns 200 if process is alive)
  GET /health/ready -- Readiness probe (database reachable, active rules per kind)
"""

import logging
import time

from fastapi import APIRouter, Request

from ...engine.severity import SCALES
from ...errors import NoRulesAvailableError
from ..models.responses import HealthResponse, ReadinessResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def liveness(request: Request) -> HealthResponse:
    """Liveness probe -- returns 200 if the process is running."""
    start_time = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        uptime_seconds=round(time.time() - start_time, 1),
    )


@router.get("/health/ready", response_model=ReadinessResponse)
def readiness(request: Request) -> ReadinessResponse:
    """Readiness probe -- a kind without active rules cannot produce decisions."""
    store = request.app.state.service.rules
    checks = {}
    for kind in SCALES:
        try:
            checks[f"{kind}_rules"] = len(store.active_rule_set(kind)) > 0
        except NoRulesAvailableError:
            checks[f"{kind}_rules"] = False
    return ReadinessResponse(ready=all(checks.values()), checks=checks)
