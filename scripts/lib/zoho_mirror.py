"""
Local mirror of Zoho CRM in Supabase.

An external sync job keeps ``zoho_leads`` and ``zoho_deals`` up to date.
Each row stores the full Zoho record in the JSONB ``data`` column plus a
few promoted columns (desarrollo, lead_status, stage, owner_name,
created_time, closing_date...) that filters are pushed down to.

This module only reads; it never writes to the mirror.
"""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from models.zoho_models import Deal, Lead, StatsFilter
from scripts.lib.logger import setup_logger
from scripts.lib.supabase_client import get_client

logger = setup_logger(__name__)

LEADS_TABLE = "zoho_leads"
DEALS_TABLE = "zoho_deals"

# Matches every won-stage label: "Ganado", "Cerrado Ganado", "Won", "Closed Won"
WON_STAGE_OR_FILTER = "stage.ilike.%ganado%,stage.ilike.%won%"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_data(row: Dict[str, Any]) -> Dict[str, Any]:
    data = row.get("data")
    if isinstance(data, str):
        data = json.loads(data)
    data = dict(data or {})
    if "id" not in data and row.get("id") is not None:
        data["id"] = row["id"]
    return data


class ZohoMirror:
    """Paged, filtered reads over the Supabase mirror tables."""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_client()
        return self._client

    # ── Filter push-down ────────────────────────────────────

    @staticmethod
    def _apply_common(query, stats_filter: StatsFilter, status_column: str):
        developments = stats_filter.development_list()
        if len(developments) == 1:
            query = query.eq("desarrollo", developments[0])
        elif developments:
            query = query.in_("desarrollo", developments)
        if stats_filter.source:
            query = query.eq("lead_source", stats_filter.source)
        if stats_filter.owner:
            query = query.eq("owner_name", stats_filter.owner)
        if stats_filter.status:
            query = query.eq(status_column, stats_filter.status)
        return query

    @staticmethod
    def _apply_created_range(query, stats_filter: StatsFilter):
        if stats_filter.start_date:
            query = query.gte("created_time", _iso(stats_filter.start_date))
        if stats_filter.end_date:
            query = query.lte("created_time", _iso(stats_filter.end_date))
        return query

    def _read_page(self, table: str, status_column: str, page: int, page_size: int,
                   stats_filter: StatsFilter) -> List[Dict[str, Any]]:
        stats_filter = stats_filter or StatsFilter()
        start = (page - 1) * page_size
        query = self.client.table(table).select("id, data")
        query = self._apply_common(query, stats_filter, status_column)
        query = self._apply_created_range(query, stats_filter)
        query = query.order("modified_time", desc=True).range(start, start + page_size - 1)
        result = query.execute()
        rows = result.data or []
        logger.debug("Mirror %s page %d: %d rows", table, page, len(rows))
        return [_row_data(row) for row in rows]

    # ── Public readers ──────────────────────────────────────

    def read_leads_page(self, page: int, page_size: int,
                        stats_filter: StatsFilter = None) -> List[Lead]:
        rows = self._read_page(LEADS_TABLE, "lead_status", page, page_size, stats_filter)
        return [Lead(row) for row in rows]

    def read_deals_page(self, page: int, page_size: int,
                        stats_filter: StatsFilter = None) -> List[Deal]:
        rows = self._read_page(DEALS_TABLE, "stage", page, page_size, stats_filter)
        return [Deal(row) for row in rows]

    def count_closed_won_deals(self, stats_filter: StatsFilter,
                               start_key: str = None, end_key: str = None) -> int:
        """Won-stage deals whose closing date key is within [start_key, end_key].

        The creation-time range of ``stats_filter`` is deliberately not
        applied: a deal created last quarter can close this month.
        """
        stats_filter = stats_filter or StatsFilter()
        query = self.client.table(DEALS_TABLE).select("id", count="exact")
        query = self._apply_common(query, stats_filter, "stage")
        query = query.or_(WON_STAGE_OR_FILTER)
        if start_key:
            query = query.gte("closing_date", start_key)
        if end_key:
            query = query.lte("closing_date", end_key)
        result = query.execute()
        count = result.count if result.count is not None else len(result.data or [])
        logger.debug("Mirror closed-won deals in [%s, %s]: %d", start_key, end_key, count)
        return count
