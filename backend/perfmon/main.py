from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from perfmon.core.config import settings
from perfmon.core.scheduler import start_scheduler, stop_scheduler, get_scheduler_status
from perfmon.core.usage_middleware import UsageTrackingMiddleware
from perfmon.api import analytics

# ─── Logging ───
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("perfmon.main")


# ─── Lifecycle ───

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Perfmon API starting up…")
    if settings.scheduler_enabled:
        start_scheduler()
    yield
    logger.info("Perfmon API shutting down…")
    stop_scheduler()


app = FastAPI(
    title="Perfmon API",
    description="Request performance monitoring: latency percentiles, error rates and usage analytics",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Usage tracking middleware
app.add_middleware(UsageTrackingMiddleware)

# Register routers
app.include_router(analytics.router)


@app.get("/")
def root():
    return {
        "name": "Perfmon API",
        "version": "0.1.0",
        "endpoints": {
            "api_usage": "/api/analytics/api-usage",
            "performance": "/api/analytics/performance",
            "metrics": "/api/analytics/metrics/{metric_name}",
            "docs": "/docs",
        },
    }


@app.get("/health")
def health():
    return {"status": "healthy", "scheduler": get_scheduler_status()}
