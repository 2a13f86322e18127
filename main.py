"""
Zoho Stats Hub API launcher.

Serves the Zoho CRM stats dashboard API (``dashboard.api.main:app``):
lead/deal funnels, first-contact timing and product partners, read from the
Supabase mirror with live Zoho CRM as fallback.

Run: python main.py    (DASHBOARD_PORT, default 8001; DEBUG=true reloads)
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("zoho-stats-hub")

PORT = int(os.getenv("DASHBOARD_PORT", "8001"))
RELOAD = os.getenv("DEBUG", "false").lower() == "true"


def _log_startup():
    zoho_ready = all(os.getenv(k) for k in ("ZOHO_CLIENT_ID", "ZOHO_CLIENT_SECRET", "ZOHO_REFRESH_TOKEN"))
    mirror_ready = bool(os.getenv("SUPABASE_URL"))
    logger.info("Zoho Stats Hub: CRM funnel and first-contact analytics")
    logger.info("  Zoho CRM credentials : %s", "set" if zoho_ready else "MISSING")
    logger.info("  Supabase mirror      : %s", "set" if mirror_ready else "not set (live Zoho only)")
    logger.info("  Stats endpoint       : http://localhost:%d/api/zoho/stats", PORT)
    logger.info("  Auto-reload          : %s", RELOAD)


if __name__ == "__main__":
    import uvicorn

    _log_startup()
    uvicorn.run("dashboard.api.main:app", host="0.0.0.0", port=PORT, reload=RELOAD)
