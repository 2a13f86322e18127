"""
Zoho CRM Paginated Fetchers
============================

Pull every Lead, Deal or Activity (Calls + Tasks) from Zoho CRM, one
``page=N&per_page=200`` request at a time.

Pagination follows ``info.more_records`` and is capped at MAX_PAGES pages
(10,000 records per module). Hitting the cap truncates the result and is
logged as a warning rather than raised.
"""
import asyncio
from typing import Any, Callable, Dict, List

from integrations.zoho.client import ZohoClient
from models.zoho_models import Activity, Deal, Lead, RecordKind
from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

PER_PAGE = 200
MAX_PAGES = 50


class ZohoFetcher:
    """Fetches complete record sets through a ZohoClient."""

    def __init__(self, client: ZohoClient = None, max_pages: int = MAX_PAGES,
                 per_page: int = PER_PAGE):
        self.client = client or ZohoClient()
        self.max_pages = max_pages
        self.per_page = per_page

    async def _paginate_all(self, label: str,
                            fetch_page: Callable[[int, int], Any]) -> List[Dict[str, Any]]:
        all_results: List[Dict[str, Any]] = []
        page = 1
        more_records = True

        while more_records and page <= self.max_pages:
            data = await fetch_page(page, self.per_page)
            results = data.get("data") or []
            all_results.extend(results)
            logger.debug("%s page %d: %d records (total: %d)", label, page, len(results), len(all_results))
            more_records = bool((data.get("info") or {}).get("more_records"))
            page += 1

        if more_records:
            logger.warning(
                "%s pagination stopped at %d pages; %d records fetched, more remain in Zoho",
                label, self.max_pages, len(all_results),
            )
        return all_results

    async def fetch_leads(self) -> List[Lead]:
        logger.info("Fetching leads...")
        rows = await self._paginate_all("Leads", self.client.get_leads)
        logger.info("Fetched %d leads", len(rows))
        return [Lead(row) for row in rows]

    async def fetch_deals(self) -> List[Deal]:
        logger.info("Fetching deals...")
        rows = await self._paginate_all("Deals", self.client.get_deals)
        logger.info("Fetched %d deals", len(rows))
        return [Deal(row) for row in rows]

    async def _fetch_activity_module(self, module: str) -> List[Dict[str, Any]]:
        async def fetch_page(page: int, per_page: int) -> Dict[str, Any]:
            return await self.client.get_activities(module, page, per_page)

        try:
            return await self._paginate_all(module, fetch_page)
        except Exception as e:
            logger.warning("Fetching %s failed; continuing without them: %s", module, e)
            return []

    async def fetch_activities(self) -> List[Activity]:
        """Calls and Tasks, paginated independently and concurrently."""
        logger.info("Fetching activities (Calls + Tasks)...")
        calls, tasks = await asyncio.gather(
            self._fetch_activity_module("Calls"),
            self._fetch_activity_module("Tasks"),
        )
        logger.info("Fetched %d activities (%d calls, %d tasks)", len(calls) + len(tasks), len(calls), len(tasks))
        return [Activity(row) for row in calls + tasks]

    async def fetch_all(self, kind: RecordKind) -> list:
        kind = RecordKind(kind)
        if kind is RecordKind.LEADS:
            return await self.fetch_leads()
        if kind is RecordKind.DEALS:
            return await self.fetch_deals()
        return await self.fetch_activities()
