"""
PIX Gateway: canonical PIX API over Brazilian banks.

Builds the provider registry and manager at startup, keeps provider health
fresh in the background and exposes it. Transaction routes live in the
calling service.

Start the server:
    uvicorn pix_gateway.main:app --reload
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from pix_gateway.api.health import router as health_router
from pix_gateway.bootstrap import build_cipher, build_registry, retry_budget
from pix_gateway.config import settings
from pix_gateway.providers.manager import ProviderManager

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("pix_gateway")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate the encryption key, wire providers and start health refresh."""
    # An unusable key is fatal: stored credentials could never be read
    app.state.cipher = build_cipher(settings)
    registry = build_registry(settings)
    manager = ProviderManager(
        registry,
        freshness_seconds=settings.health_freshness_seconds,
        max_retries=retry_budget(settings),
    )
    app.state.registry = registry
    app.state.manager = manager

    records = await manager.check_health()
    healthy = sum(1 for code in records if manager.is_healthy(code))
    logger.info("PIX gateway started (%s, %d/%d providers healthy)", settings.environment, healthy, len(registry))

    app.state.health_task = asyncio.create_task(manager.run_health_checks(settings.health_check_interval_seconds))
    yield

    app.state.health_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.health_task
    logger.info("PIX gateway stopped")


app = FastAPI(
    title="PIX Gateway",
    description=(
        "Canonical PIX transfers and QR codes across Banco do Brasil, Bradesco, "
        "Itaú, Santander and Banco Inter, with classified errors and health-aware "
        "provider fallback."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
