"""
Audit Engine - FastAPI Application Entry Point
"""
import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from audit_engine.api.dependencies import get_state_machine
from audit_engine.api.v1.endpoints import audits, health, reports
from audit_engine.config import settings
from audit_engine.logger import logger

STALE_SWEEP_SECONDS = 60

# Create app
app = FastAPI(
    title=settings.APP_NAME,
    description="Site, performance and AI-optimization audits with combined reports",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(audits.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")

_sweeper: asyncio.Task | None = None


async def _sweep_stale_audits():
    """Fail audits whose runner stopped updating them."""
    machine = get_state_machine()
    while True:
        await asyncio.sleep(STALE_SWEEP_SECONDS)
        try:
            failed = await machine.fail_stale_audits()
        except Exception:
            logger.exception("Stale audit sweep failed")
            continue
        if failed:
            logger.warning(f"Marked {len(failed)} stale audits as failed")


@app.on_event("startup")
async def startup():
    """Initialize on startup."""
    global _sweeper
    logger.info(f"Starting {settings.APP_NAME}...")
    _sweeper = asyncio.create_task(_sweep_stale_audits())


@app.on_event("shutdown")
async def shutdown():
    if _sweeper is not None:
        _sweeper.cancel()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }
