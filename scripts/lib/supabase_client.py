"""
Supabase connection for the local Zoho mirror.

The mirror tables (``zoho_leads``, ``zoho_deals``) are filled by a separate
sync job; this module only hands out the shared client used to read them.

Usage:
    from scripts.lib.supabase_client import get_client, is_configured

    if is_configured():
        rows = get_client().table("zoho_leads").select("data").limit(10).execute().data
"""
import os
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

_client = None


def _credentials() -> Tuple[str, str]:
    # Service-role key takes precedence over SUPABASE_KEY
    url = os.environ.get("SUPABASE_URL", "")
    key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "") or os.environ.get("SUPABASE_KEY", "")
    return url, key


def is_configured() -> bool:
    return all(_credentials())


def get_client():
    """Shared Supabase client, created on first use.

    Raises:
        RuntimeError: when the URL or key is missing.
    """
    global _client
    if _client is None:
        url, key = _credentials()
        if not (url and key):
            raise RuntimeError("Local mirror needs SUPABASE_URL and SUPABASE_KEY (or SUPABASE_SERVICE_ROLE_KEY)")

        from supabase import create_client
        _client = create_client(url, key)
        logger.info("Supabase mirror client created for %s", url)
    return _client
