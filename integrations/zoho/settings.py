"""
Zoho CRM settings.

Read once from the environment (and the project .env) into a frozen
dataclass so the credential manager, request client and business calendar
share one view of the configuration.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_ACCOUNTS_URL = "https://accounts.zoho.com"
DEFAULT_CRM_API_URL = "https://www.zohoapis.com/crm/v2"
DEFAULT_REQUEST_TIMEOUT = 20  # seconds
DEFAULT_BUSINESS_UTC_OFFSET_MINUTES = -360  # UTC-06:00, no DST


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@dataclass(frozen=True)
class ZohoSettings:
    accounts_url: str = DEFAULT_ACCOUNTS_URL
    api_url: str = DEFAULT_CRM_API_URL
    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = ""
    request_timeout: int = DEFAULT_REQUEST_TIMEOUT
    business_utc_offset_minutes: int = DEFAULT_BUSINESS_UTC_OFFSET_MINUTES

    @classmethod
    def from_env(cls) -> "ZohoSettings":
        return cls(
            accounts_url=os.getenv("ZOHO_ACCOUNTS_URL", DEFAULT_ACCOUNTS_URL),
            api_url=os.getenv("ZOHO_CRM_API_URL", DEFAULT_CRM_API_URL),
            client_id=os.getenv("ZOHO_CLIENT_ID", ""),
            client_secret=os.getenv("ZOHO_CLIENT_SECRET", ""),
            refresh_token=os.getenv("ZOHO_REFRESH_TOKEN", ""),
            request_timeout=_int_env("ZOHO_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            business_utc_offset_minutes=_int_env(
                "BUSINESS_UTC_OFFSET_MINUTES", DEFAULT_BUSINESS_UTC_OFFSET_MINUTES,
            ),
        )

    def missing(self) -> List[str]:
        """Names of the credential settings that are not set."""
        required = {
            "ZOHO_CLIENT_ID": self.client_id,
            "ZOHO_CLIENT_SECRET": self.client_secret,
            "ZOHO_REFRESH_TOKEN": self.refresh_token,
            "ZOHO_ACCOUNTS_URL": (self.accounts_url or "").strip(),
        }
        return [name for name, value in required.items() if not value]

    @property
    def is_configured(self) -> bool:
        return not self.missing()
