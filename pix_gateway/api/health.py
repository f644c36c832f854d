"""
Health endpoints.

GET /health           Liveness plus number of registered providers.
GET /health/providers Probe every provider and report per-provider health.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from pix_gateway.providers.manager import ProviderManager

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    providers: int


class ProviderHealth(BaseModel):
    code: str
    name: str
    priority: int
    status: str
    checked_at: Optional[str]
    error: Optional[str] = None
    methods: list[str]


def get_manager(request: Request) -> ProviderManager:
    return request.app.state.manager


@router.get("", response_model=HealthResponse)
async def health(manager: ProviderManager = Depends(get_manager)):
    return HealthResponse(status="ok", providers=len(manager.registry))


@router.get("/providers", response_model=list[ProviderHealth])
async def providers_health(manager: ProviderManager = Depends(get_manager)):
    """Run a health check on every registered provider, concurrently."""
    records = await manager.check_health()
    registry = manager.registry
    return [
        ProviderHealth(
            code=code,
            name=provider.name,
            priority=registry.priority(code),
            status=records[code].status.value,
            checked_at=records[code].checked_at.isoformat() if records[code].checked_at else None,
            error=records[code].error or None,
            methods=sorted(provider.get_supported_methods()),
        )
        for code, provider in registry.get_all().items()
    ]
