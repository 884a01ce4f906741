"""Service health endpoint."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends

from ... import __version__
from ..deps.context import AppContext
from ..deps.providers import get_context
from ..schemas.jobs import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(context: AppContext = Depends(get_context)) -> HealthResponse:
    """Database reachability plus credential state of every provider.

    ``degraded`` means some provider cannot run jobs for lack of a key;
    ``unhealthy`` means the job store does not answer.
    """
    database_ok = await context.store.ping()
    providers = context.registry.describe()
    dependencies: Dict[str, str] = {"database": "ok" if database_ok else "unavailable"}
    for name, info in providers.items():
        dependencies[name] = "configured" if info["configured"] else "missing_api_key"

    if not database_ok:
        status = "unhealthy"
    elif all(info["configured"] for info in providers.values()):
        status = "healthy"
    else:
        status = "degraded"
    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        dependencies=dependencies,
        providers=providers,
    )
