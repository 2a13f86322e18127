"""
Zoho OAuth Credential Manager
==============================

Exchanges the long-lived refresh token for short-lived access tokens
(Zoho issues them for one hour) and caches the current one.

The cached token is stored with a five minute margin, so a token handed to a
caller always has at least five minutes left before Zoho expires it. Any
authorization failure seen by the request client calls ``invalidate()`` and
the next ``get_access_token()`` performs a fresh exchange. A token issued
with five minutes or less to live is returned once and never cached.
"""
import asyncio
import json
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import aiohttp

from integrations.zoho.settings import ZohoSettings
from scripts.lib.errors import AuthExchangeError, ConfigurationError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

TOKEN_PATH = "/oauth/v2/token"
EXPIRY_MARGIN_SECONDS = 300

REGIONAL_ACCOUNTS_HINT = (
    "If your account is in EU, use: https://accounts.zoho.eu. "
    "If it is in IN, use: https://accounts.zoho.in. "
    "If it is in AU, use: https://accounts.zoho.com.au. "
    "For the standard region (US), use: https://accounts.zoho.com"
)


@dataclass
class AccessToken:
    value: str
    expires_at_ms: float


def normalize_token_url(accounts_url: str) -> str:
    """Build the token endpoint from a possibly over-specified accounts URL."""
    base = (accounts_url or "").strip()
    if base.endswith("/"):
        base = base[:-1]
    idx = base.find(TOKEN_PATH)
    if idx != -1:
        base = base[:idx]
    return f"{base}{TOKEN_PATH}"


class CredentialManager:
    """Acquires and caches a Zoho access token via refresh-token exchange."""

    def __init__(self, settings: ZohoSettings = None,
                 clock: Callable[[], float] = time.time):
        self.settings = settings or ZohoSettings.from_env()
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._lock = asyncio.Lock()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    def invalidate(self):
        """Drop the cached token; the next call re-exchanges."""
        self._token = None

    def _valid_cached(self) -> Optional[str]:
        if self._token and self._now_ms() < self._token.expires_at_ms:
            return self._token.value
        return None

    async def get_access_token(self) -> str:
        cached = self._valid_cached()
        if cached:
            return cached

        missing = self.settings.missing()
        if missing:
            raise ConfigurationError(missing)

        async with self._lock:
            # Another coroutine may have refreshed while we waited
            cached = self._valid_cached()
            if cached:
                return cached
            return await self._exchange()

    async def _send_exchange(self, url: str, form: dict) -> Tuple[int, str]:
        """POST the form to the token endpoint. Returns (status, body text)."""
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                url,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            ) as resp:
                return resp.status, await resp.text()

    async def _exchange(self) -> str:
        token_url = normalize_token_url(self.settings.accounts_url)
        logger.debug(
            "Requesting Zoho access token from %s (client_id=%s, refresh_token=%s)",
            token_url, bool(self.settings.client_id), bool(self.settings.refresh_token),
        )
        form = {
            "refresh_token": self.settings.refresh_token,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "grant_type": "refresh_token",
        }
        issued_at_ms = self._now_ms()

        try:
            status, text = await self._send_exchange(token_url, form)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Zoho token exchange failed (%s): %s", token_url, e)
            raise AuthExchangeError(
                f"Token exchange request failed: {e}", url=token_url,
            ) from e

        if not 200 <= status < 300:
            if status == 404:
                message = (
                    f"Zoho Accounts URL is not correct (404). Tried: {token_url}. "
                    f"Check ZOHO_ACCOUNTS_URL. {REGIONAL_ACCOUNTS_HINT}"
                )
            else:
                message = f"Error obtaining Zoho token ({status}): {_error_detail(text)}"
            logger.error("Zoho token exchange rejected: %s", message)
            raise AuthExchangeError(message, status_code=status, url=token_url)

        try:
            payload = json.loads(text) if text else {}
        except ValueError:
            payload = {}

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise AuthExchangeError(
                "Zoho token response does not contain access_token",
                status_code=status, url=token_url,
            )

        expires_in = float(payload.get("expires_in") or 3600)
        if expires_in <= EXPIRY_MARGIN_SECONDS:
            # Already inside the margin: good for this call only, never cached
            self._token = None
            logger.warning("Zoho access token expires in %.0fs; not caching it", expires_in)
            return access_token

        self._token = AccessToken(
            value=access_token,
            expires_at_ms=issued_at_ms + (expires_in - EXPIRY_MARGIN_SECONDS) * 1000,
        )
        logger.debug("Zoho access token acquired (expires in %.0fs)", expires_in)
        return access_token


def _error_detail(text: str) -> str:
    """Pull ``error`` / ``error_description`` out of a JSON error body."""
    try:
        body = json.loads(text)
    except (ValueError, TypeError):
        return text
    if isinstance(body, dict):
        return body.get("error") or body.get("error_description") or text
    return text
