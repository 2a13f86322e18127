"""
Zoho Data Source Resolver
==========================

Decides where a stats run reads its Leads and Deals from: the Supabase
mirror when it has rows for the filter, otherwise the live Zoho CRM API.

Mirror data arrives already filtered (the filter is pushed down into the
query). Remote data arrives unfiltered and the caller filters it in memory;
``ReconciledRecordSet.from_local_mirror`` tells the two apart. The remote
path never writes back to the mirror.
"""
from typing import Callable, List

from integrations.zoho.fetchers import ZohoFetcher
from models.zoho_models import ReconciledRecordSet, RecordKind, StatsFilter
from scripts.lib.logger import setup_logger
from scripts.lib.zoho_mirror import ZohoMirror

logger = setup_logger(__name__)

MIRROR_PAGE_SIZE = 10_000
MIRROR_MAX_PAGES = 10


class DataSourceResolver:
    """Mirror-first, remote-fallback loader for Leads and Deals."""

    def __init__(self, mirror: ZohoMirror = None, fetcher: ZohoFetcher = None,
                 page_size: int = MIRROR_PAGE_SIZE, max_pages: int = MIRROR_MAX_PAGES):
        self.mirror = mirror or ZohoMirror()
        self.fetcher = fetcher or ZohoFetcher()
        self.page_size = page_size
        self.max_pages = max_pages

    def _read_all(self, read_page: Callable, stats_filter: StatsFilter) -> List:
        records = []
        for page in range(1, self.max_pages + 1):
            batch = read_page(page, self.page_size, stats_filter)
            if not batch:
                break
            records.extend(batch)
            if len(batch) < self.page_size:
                break
        return records

    def read_mirror(self, stats_filter: StatsFilter) -> ReconciledRecordSet:
        leads = self._read_all(self.mirror.read_leads_page, stats_filter)
        deals = self._read_all(self.mirror.read_deals_page, stats_filter)
        return ReconciledRecordSet(leads=leads, deals=deals, from_local_mirror=True)

    async def fetch_remote(self) -> ReconciledRecordSet:
        leads = await self.fetcher.fetch_all(RecordKind.LEADS)
        deals = await self.fetcher.fetch_all(RecordKind.DEALS)
        return ReconciledRecordSet(leads=leads, deals=deals, from_local_mirror=False)

    async def resolve(self, stats_filter: StatsFilter = None,
                      prefer_local: bool = True) -> ReconciledRecordSet:
        stats_filter = stats_filter or StatsFilter()

        if prefer_local:
            try:
                mirrored = self.read_mirror(stats_filter)
            except Exception as e:
                logger.warning("Local mirror unavailable, using Zoho CRM: %s", e)
            else:
                if mirrored.leads or mirrored.deals:
                    logger.debug(
                        "Using local mirror: %d leads, %d deals",
                        len(mirrored.leads), len(mirrored.deals),
                    )
                    return mirrored
                logger.debug("Local mirror empty for this filter; fetching from Zoho CRM")

        remote = await self.fetch_remote()
        logger.debug("Fetched from Zoho CRM: %d leads, %d deals", len(remote.leads), len(remote.deals))
        return remote
