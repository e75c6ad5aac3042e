"""
VHC Workflow Backend - Main Application

Vehicle health check workflow dashboard backend.
Serves the Kanban board, SLA alerts, timelines and KPIs derived from
health check and repair item data in Supabase.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import os
import logging

load_dotenv()

from app import settings
from app.routers import dashboard, health_checks, kpi

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    # Startup
    logger.info("Starting VHC Workflow Backend...")
    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        logger.warning("[Startup] Supabase is not configured; data endpoints will fail")
    yield
    # Shutdown
    logger.info("Shutting down VHC Workflow Backend...")


# Initialize FastAPI app
app = FastAPI(
    title="VHC Workflow Backend",
    description="Vehicle health check workflow board, alerts and KPIs",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(health_checks.router, prefix="/api/health-checks", tags=["Health Checks"])
app.include_router(kpi.router, prefix="/api/kpi", tags=["KPI"])


@app.get("/")
def read_root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "VHC Workflow Backend",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Detailed health check"""
    return {
        "status": "healthy",
        "supabase_configured": bool(settings.SUPABASE_URL and settings.SUPABASE_KEY),
        "default_organization_configured": bool(settings.DEFAULT_ORGANIZATION_ID),
        "vat_rate": settings.VAT_RATE,
        "terminal_statuses": settings.TERMINAL_STATUSES,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=True)
