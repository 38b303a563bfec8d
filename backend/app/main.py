import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import engine
from app.middleware.exceptions import register_exception_handlers
from app.middleware.rate_limit import RateLimitMiddleware
from app.routers import consignments, containers, health, orders
from app.utils.cache import close_redis

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"FreightDesk starting ({settings.environment})")
    yield
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="FreightDesk",
    description="Shipment order and container lifecycle engine",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
if settings.rate_limit_enabled:
    app.add_middleware(
        RateLimitMiddleware,
        default_limit=settings.rate_limit_requests,
        default_window=settings.rate_limit_window,
        exempt_paths=["/health", "/health/ready", "/docs", "/openapi.json"],
    )

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(containers.router, prefix="/api/containers", tags=["containers"])
app.include_router(consignments.router, prefix="/api/consignments", tags=["consignments"])
