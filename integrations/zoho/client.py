"""
Zoho CRM Request Client
========================

Authenticated, timeout-bounded calls to the Zoho CRM v2 REST API.

Auth failures get exactly one transparent retry with a fresh token. Zoho
signals them two ways: an HTTP 401, or a 200 whose ``data[0]`` carries
``{"status": "error", "code": "INVALID_TOKEN"}``. A second consecutive
failure is raised to the caller.

Empty or non-JSON bodies come back as ``{"data": []}``: Zoho answers
"no related records" (e.g. a lead without notes) with an empty 204/200.
"""
import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from integrations.zoho.auth import CredentialManager
from integrations.zoho.settings import ZohoSettings
from scripts.lib.errors import RemoteAPIError
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

MAX_AUTH_RETRIES = 1
MAX_PER_PAGE = 200
NOTES_BATCH_SIZE = 10
NOTES_BATCH_DELAY = 0.5  # seconds

ACTIVITY_MODULES = {"Calls": "Call", "Tasks": "Task"}


def _empty_page() -> Dict[str, Any]:
    return {"data": [], "info": {}}


class ZohoClient:
    """Zoho CRM API client sharing one CredentialManager."""

    def __init__(self, credentials: CredentialManager = None,
                 settings: ZohoSettings = None):
        self.settings = settings or (credentials.settings if credentials else ZohoSettings.from_env())
        self.credentials = credentials or CredentialManager(self.settings)

    @property
    def is_configured(self) -> bool:
        return self.settings.is_configured

    # ── Transport ───────────────────────────────────────────

    async def _send(self, method: str, url: str, headers: Dict[str, str],
                    params: dict = None, json_body: dict = None) -> Tuple[int, str]:
        """Issue one HTTP call. Returns (status, body text)."""
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(
                method, url, headers=headers, params=params, json=json_body,
            ) as resp:
                return resp.status, await resp.text()

    async def request(self, endpoint: str, method: str = "GET", params: dict = None,
                      json_body: dict = None, quiet: bool = False) -> Dict[str, Any]:
        """Make an authenticated request; errors are logged unless ``quiet``."""
        url = f"{self.settings.api_url}{endpoint}"
        retries_left = MAX_AUTH_RETRIES

        while True:
            token = await self.credentials.get_access_token()
            headers = {
                "Authorization": f"Zoho-oauthtoken {token}",
                "Content-Type": "application/json",
            }
            status, text = await self._send(method, url, headers, params, json_body)

            if not 200 <= status < 300:
                if status == 401 and retries_left > 0:
                    if not quiet:
                        logger.warning("Zoho token expired or invalid (401) on %s. Retrying...", endpoint)
                    self.credentials.invalidate()
                    retries_left -= 1
                    continue
                if not quiet:
                    logger.error("Zoho CRM %s %s returned %d: %s", method, endpoint, status, text)
                raise RemoteAPIError(status, text, endpoint=endpoint)

            payload = self._parse_body(text, endpoint, quiet)
            embedded = _embedded_error(payload)
            if embedded is None:
                return payload

            if embedded.get("code") == "INVALID_TOKEN" and retries_left > 0:
                if not quiet:
                    logger.warning("Zoho token invalid (reported in body) on %s. Retrying...", endpoint)
                self.credentials.invalidate()
                retries_left -= 1
                continue

            message = embedded.get("message") or "Unknown Zoho CRM error"
            if not quiet:
                logger.error("Zoho CRM error response on %s: %s", endpoint, message)
            raise RemoteAPIError(status, json.dumps(embedded), endpoint=endpoint, message=message)

    async def request_quiet(self, endpoint: str, method: str = "GET",
                            params: dict = None, json_body: dict = None) -> Dict[str, Any]:
        """``request`` for lookups that are expected to miss often."""
        return await self.request(endpoint, method, params, json_body, quiet=True)

    @staticmethod
    def _parse_body(text: str, endpoint: str, quiet: bool) -> Dict[str, Any]:
        if not text or not text.strip():
            return {"data": []}
        try:
            payload = json.loads(text)
        except ValueError:
            if not quiet:
                logger.warning("Empty or invalid response from Zoho CRM (%s); returning no data", endpoint)
            return {"data": []}
        if not isinstance(payload, dict):
            return {"data": []}
        return payload

    # ── Records ─────────────────────────────────────────────

    async def get_leads(self, page: int = 1, per_page: int = MAX_PER_PAGE) -> Dict[str, Any]:
        return await self.request(
            "/Leads", params={"page": page, "per_page": min(per_page, MAX_PER_PAGE)},
        )

    async def get_deals(self, page: int = 1, per_page: int = MAX_PER_PAGE) -> Dict[str, Any]:
        return await self.request(
            "/Deals", params={"page": page, "per_page": min(per_page, MAX_PER_PAGE)},
        )

    async def get_deal(self, deal_id: str) -> Optional[Dict[str, Any]]:
        data = await self.request(f"/Deals/{strip_zcrm_prefix(deal_id)}")
        records = data.get("data") or []
        return records[0] if records else None

    async def get_activities(self, activity_type: str = "all", page: int = 1,
                             per_page: int = MAX_PER_PAGE) -> Dict[str, Any]:
        """One page of Calls, Tasks, or both (``"all"``), tagged with Activity_Type.

        A single module raises on failure. With ``"all"`` a failing module
        contributes an empty page instead.
        """
        if activity_type == "all":
            calls, tasks = await asyncio.gather(
                self._activity_page_or_empty("Calls", page, per_page),
                self._activity_page_or_empty("Tasks", page, per_page),
            )
            combined = calls["data"] + tasks["data"]
            return {
                "data": combined,
                "info": {"count": len(combined), "page": page,
                         "per_page": per_page, "more_records": False},
            }
        return await self._activity_page(activity_type, page, per_page)

    async def _activity_page(self, module: str, page: int, per_page: int) -> Dict[str, Any]:
        tag = ACTIVITY_MODULES.get(module, module.rstrip("s"))
        response = await self.request(
            f"/{module}", params={"page": page, "per_page": min(per_page, MAX_PER_PAGE)},
        )
        data = [{**record, "Activity_Type": tag} for record in (response.get("data") or [])]
        return {**response, "data": data}

    async def _activity_page_or_empty(self, module: str, page: int, per_page: int) -> Dict[str, Any]:
        try:
            return await self._activity_page(module, page, per_page)
        except Exception as e:
            logger.warning("Fetching %s page %d failed; treating as empty: %s", module, page, e)
            return _empty_page()

    # ── Metadata & related lists ────────────────────────────

    async def get_fields(self, module: str) -> List[Dict[str, Any]]:
        """Field metadata (api_name, data_type, pick lists...) for a module."""
        response = await self.request("/settings/fields", params={"module": module})
        return response.get("fields") or []

    async def get_notes(self, module: str, record_id: str) -> List[Dict[str, Any]]:
        """Notes attached to a Lead or Deal; [] when there are none."""
        try:
            response = await self.request_quiet(f"/{module}/{record_id}/Notes")
        except Exception as e:
            logger.debug("No notes for %s %s: %s", module, record_id, e)
            return []
        return response.get("data") or []

    async def get_notes_for_records(self, module: str,
                                    record_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        notes_map: Dict[str, List[Dict[str, Any]]] = {}
        for i in range(0, len(record_ids), NOTES_BATCH_SIZE):
            batch = record_ids[i:i + NOTES_BATCH_SIZE]
            results = await asyncio.gather(*(self.get_notes(module, rid) for rid in batch))
            notes_map.update(zip(batch, results))
            if i + NOTES_BATCH_SIZE < len(record_ids):
                await asyncio.sleep(NOTES_BATCH_DELAY)
        return notes_map

    # ── Products ────────────────────────────────────────────

    async def get_product_subform(self, product_id: str,
                                  subform_name: str = "Socios_del_Producto") -> List[Dict[str, Any]]:
        clean_id = strip_zcrm_prefix(product_id)
        try:
            response = await self.request(f"/Products/{clean_id}", params={"fields": subform_name})
        except Exception as e:
            logger.error("Fetching subform %s of product %s failed: %s", subform_name, clean_id, e)
            return []
        records = response.get("data") or []
        if not records:
            logger.warning("Product %s not found", clean_id)
            return []
        rows = records[0].get(subform_name) or []
        logger.debug("Subform %s of product %s: %d rows", subform_name, clean_id, len(rows))
        return rows if isinstance(rows, list) else []

    async def search_products_by_development(self, development: str) -> List[Dict[str, Any]]:
        response = await self.request(
            "/Products/search", params={"criteria": f"(Desarrollo:equals:{development})"},
        )
        return response.get("data") or []

    # ── Health ──────────────────────────────────────────────

    async def test_connection(self) -> bool:
        try:
            await self.credentials.get_access_token()
            await self.get_leads(1, 1)
            return True
        except Exception as e:
            logger.error("Zoho connection check failed: %s", e)
            return False

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "Zoho CRM",
            "configured": self.is_configured,
            "api_url": self.settings.api_url,
            "features": ["leads", "deals", "activities", "notes", "products"],
        }


def strip_zcrm_prefix(record_id: str) -> str:
    record_id = str(record_id)
    return record_id[len("zcrm_"):] if record_id.startswith("zcrm_") else record_id


def _embedded_error(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return ``data[0]`` when Zoho reports an error inside a success body."""
    data = payload.get("data")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        if data[0].get("status") == "error":
            return data[0]
    return None
