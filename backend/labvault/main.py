import logging
import time
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from labvault.api.v1 import api_router
from labvault.config import settings
from labvault.core.error_handlers import register_error_handlers
from labvault.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from labvault.database import async_session_factory, engine
from labvault.models.storage import StorageUnit

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# --- Middleware (outermost first) ---

app.add_middleware(SecurityHeadersMiddleware, enable_hsts=not settings.DEBUG)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID", "X-Actor-ID"],
)

register_error_handlers(app)
app.include_router(api_router)


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 1)


async def _probe_database() -> dict:
    start = time.monotonic()
    async with async_session_factory() as session:
        units = await session.scalar(
            select(func.count(StorageUnit.id)).where(StorageUnit.is_deleted == False)  # noqa: E712
        )
    return {"status": "ok", "latency_ms": _elapsed_ms(start), "storage_units": units}


async def _probe_redis() -> dict:
    start = time.monotonic()
    client = aioredis.from_url(settings.REDIS_URL, socket_connect_timeout=3)
    try:
        await client.ping()
    finally:
        await client.aclose()
    return {"status": "ok", "latency_ms": _elapsed_ms(start)}


@app.get("/api/health")
async def health_check():
    """Database and Redis (Celery broker) reachability. 503 when either is down."""
    checks: dict = {"version": settings.APP_VERSION}
    for name, probe in (("database", _probe_database), ("redis", _probe_redis)):
        try:
            checks[name] = await probe()
        except Exception as exc:
            logger.warning("Health check %s failed: %s", name, exc)
            checks[name] = {"status": "error", "detail": str(exc)[:200]}

    healthy = all(checks[name]["status"] == "ok" for name in ("database", "redis"))
    checks["status"] = "healthy" if healthy else "degraded"
    return JSONResponse(content=checks, status_code=200 if healthy else 503)
