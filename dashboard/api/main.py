"""
Zoho Stats Hub — API Server
============================

Serves Zoho CRM statistics to the sales dashboard.

Route groups:
  /api/health   - Health check
  /api/zoho/*   - Zoho CRM stats, previous-month stats, product partners
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ─── Lifespan ─────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app):
    """Application startup and shutdown."""
    logger.info("Starting Zoho Stats Hub...")

    from integrations.zoho.settings import ZohoSettings
    settings = ZohoSettings.from_env()
    if settings.is_configured:
        logger.info("Zoho CRM: configured (%s)", settings.api_url)
    else:
        logger.warning("Zoho CRM not configured; missing %s", ", ".join(settings.missing()))

    # Supabase mirror check
    try:
        from scripts.lib.supabase_client import get_client
        get_client()
        logger.info("Supabase mirror connected")
    except Exception as e:
        logger.warning("Supabase mirror not available, stats will use Zoho directly: %s", e)

    logger.info("Zoho Stats Hub ready")
    yield
    logger.info("Shutting down Zoho Stats Hub...")


# ─── App Setup ────────────────────────────────────────────────

cors_origins = os.getenv(
    "CORS_ORIGINS", "http://localhost:3000,http://localhost:8001"
).split(",")

app = FastAPI(
    title="Zoho Stats Hub",
    version=VERSION,
    description="Zoho CRM sync & analytics for the sales dashboard",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Include Routers ──────────────────────────────────────────

from dashboard.api.routers.zoho import router as zoho_router

app.include_router(zoho_router)


# ─── Health ───────────────────────────────────────────────────

@app.get("/api/health", tags=["system"])
async def health():
    """Health check with configuration status (no network calls)."""
    from integrations.zoho.settings import ZohoSettings
    from scripts.lib.supabase_client import is_configured as supabase_configured

    return {
        "status": "healthy",
        "service": "Zoho Stats Hub",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "integrations": {
            "zoho": ZohoSettings.from_env().is_configured,
            "supabase": supabase_configured(),
        },
    }
