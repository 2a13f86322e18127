"""
Zoho CRM Stats Analyzer
========================
Computes funnel, conversion, quality and timing statistics over Zoho CRM
Leads and Deals for one StatsFilter (development(s), date range, source,
owner, status).

Data comes from the Supabase mirror when it has rows for the filter
(already filtered by the query) and from the live Zoho API otherwise
(filtered here, in memory).

Exports:
    BreakdownAnalyzer, FirstContactAnalyzer, QualityAnalyzer,
    TemporalAnalyzer, ActivityAnalyzer, ActivityCache, ZohoStatsEngine,
    get_stats, get_stats_for_previous_month, get_product_partners,
    test_connection
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import math
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from integrations.zoho.client import ZohoClient
from integrations.zoho.fetchers import ZohoFetcher
from integrations.zoho.products import ProductPartnerResolver
from integrations.zoho.settings import ZohoSettings
from models.zoho_models import (
    Activity,
    Deal,
    FirstContactTime,
    Lead,
    LifecycleFunnel,
    ProductPartner,
    RecordKind,
    StatsFilter,
    StatsResult,
)
from scripts.lib.business_calendar import BusinessCalendar, parse_ts
from scripts.lib.logger import setup_logger
from scripts.lib.zoho_mirror import ZohoMirror
from scripts.zoho_data_resolver import DataSourceResolver

logger = setup_logger(__name__)

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------
WON_STAGES = ("Ganado", "Won", "Cerrado Ganado")
INTEREST_STATUSES = ("Contactado", "Cotización", "Visita", "Interesado", "Calificado", "Agendo cita")
ADVANCED_STAGES = ("Negociación", "Propuesta", "Cierre", "Ganado")

NO_STATUS = "Sin Estado"
NO_STAGE = "Sin Etapa"
NO_DEVELOPMENT = "Sin Desarrollo"
NO_SOURCE = "Sin Fuente"
NO_OWNER = "Sin Asesor"
UNKNOWN_ACTIVITY = "Unknown"

MAX_CONTACT_MINUTES = 100_000
DEBUG_SAMPLE_SIZE = 10

# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------

def _pct(numerator: float, denominator: float) -> float:
    """Percentage rounded half-up to 2 decimals; 0 when denominator is 0."""
    if not denominator:
        return 0.0
    return math.floor(numerator / denominator * 10000 + 0.5) / 100


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def category_label(value: Any, default: str = "") -> str:
    """Text key for a CRM field value.

    Lookups give their ``name``, multi-selects are joined with ", " and
    anything else goes through ``str()``. Blank values give ``default``.
    """
    if isinstance(value, dict):
        value = value.get("name")
    elif isinstance(value, (list, tuple)):
        value = ", ".join(label for label in (category_label(v) for v in value) if label)
    if value is None:
        return default
    text = str(value)
    return text if text.strip() else default


def is_won_stage(stage: Any) -> bool:
    s = category_label(stage).lower()
    return any(k.lower() in s for k in WON_STAGES)


def _contains_any(value: Any, needles: Tuple[str, ...]) -> bool:
    v = category_label(value).lower()
    return bool(v) and any(n.lower() in v for n in needles)


def _mutually_contains(a: Any, b: Any) -> bool:
    a, b = category_label(a).lower(), category_label(b).lower()
    return a in b or b in a


def _development_values(value: Any) -> set:
    """Lower-cased development names; a multi-select yields one per option."""
    items = value if isinstance(value, (list, tuple)) else [value]
    names = (category_label(item).strip().lower() for item in items)
    return {name for name in names if name}


def _to_minutes(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    return minutes if math.isfinite(minutes) else None


def deal_close_date_key(deal: Deal, calendar: BusinessCalendar) -> Optional[str]:
    """First usable date key along Closing_Date → Closed_Time → Closed_Date → Modified_Time."""
    for value in deal.close_date_candidates():
        key = calendar.date_key(value)
        if key:
            return key
    return None


# ============================================================================
# Activity cache
# ============================================================================

class ActivityCache:
    """Fetches all Calls + Tasks at most once per aggregation run."""

    def __init__(self, fetcher: ZohoFetcher):
        self.fetcher = fetcher
        self._activities: Optional[List[Activity]] = None

    async def get(self) -> List[Activity]:
        if self._activities is None:
            try:
                self._activities = await self.fetcher.fetch_all(RecordKind.ACTIVITIES)
            except Exception as e:
                logger.warning("Activities unavailable; activity-based metrics will be empty: %s", e)
                self._activities = []
        return self._activities

    @staticmethod
    def by_lead(activities: List[Activity]) -> Dict[str, List[Activity]]:
        grouped: Dict[str, List[Activity]] = defaultdict(list)
        for activity in activities:
            if activity.lead_id:
                grouped[activity.lead_id].append(activity)
        return grouped


# ============================================================================
# Record filtering
# ============================================================================

class RecordFilter:
    """In-memory filters for remote (unfiltered) record sets."""

    def __init__(self, calendar: BusinessCalendar):
        self.calendar = calendar

    @staticmethod
    def by_development(records: list, developments: List[str]) -> list:
        allowed = {d.strip().lower() for d in developments if d and d.strip()}
        if not allowed:
            return records
        return [r for r in records if _development_values(r.development) & allowed]

    @staticmethod
    def _in_range(value: Any, start: Optional[datetime], end: Optional[datetime]) -> bool:
        dt = parse_ts(value)
        if dt is None:
            return False
        if start and dt < start:
            return False
        if end and dt > end:
            return False
        return True

    def leads_by_date(self, leads: List[Lead], stats_filter: StatsFilter) -> List[Lead]:
        return [
            lead for lead in leads
            if self._in_range(lead.created_time, stats_filter.start_date, stats_filter.end_date)
        ]

    def deals_by_date(self, deals: List[Deal], stats_filter: StatsFilter) -> List[Deal]:
        """Created in range, or won-stage with a close date in range."""
        start_key = self.calendar.date_key(stats_filter.start_date)
        end_key = self.calendar.date_key(stats_filter.end_date)
        kept = []
        for deal in deals:
            created_in_range = self._in_range(deal.created_time, stats_filter.start_date, stats_filter.end_date)
            closed_in_range = is_won_stage(deal.stage) and self.calendar.is_date_key_in_range(
                deal_close_date_key(deal, self.calendar), start_key, end_key,
            )
            if created_in_range or closed_in_range:
                kept.append(deal)
        return kept

    @staticmethod
    def common(leads: List[Lead], deals: List[Deal], won_base: List[Deal],
               stats_filter: StatsFilter) -> Tuple[List[Lead], List[Deal], List[Deal]]:
        """Source / owner / status filters, applied whatever the data source."""
        if stats_filter.source:
            src = stats_filter.source
            leads = [r for r in leads if category_label(r.source) == src]
            deals = [r for r in deals if category_label(r.source) == src]
            won_base = [r for r in won_base if category_label(r.source) == src]
        if stats_filter.owner:
            owner = stats_filter.owner
            leads = [r for r in leads if category_label(r.owner_name) == owner]
            deals = [r for r in deals if category_label(r.owner_name) == owner]
            won_base = [r for r in won_base if category_label(r.owner_name) == owner]
        if stats_filter.status:
            status = stats_filter.status
            leads = [r for r in leads if category_label(r.status) == status]
            deals = [r for r in deals if category_label(r.stage) == status]
            won_base = [r for r in won_base if category_label(r.stage) == status]
        return leads, deals, won_base


# ============================================================================
# Breakdowns (status, stage, development, source, owner, value, discards)
# ============================================================================

class BreakdownAnalyzer:
    """Categorical frequency maps and the conversion/discard KPIs."""

    def __init__(self, calendar: BusinessCalendar):
        self.calendar = calendar

    def analyze(self, leads: List[Lead], deals: List[Deal]) -> Dict[str, Any]:
        leads_by_status = Counter(category_label(lead.status, NO_STATUS) for lead in leads)
        deals_by_stage = Counter(category_label(deal.stage, NO_STAGE) for deal in deals)

        leads_by_development = Counter(category_label(lead.development, NO_DEVELOPMENT) for lead in leads)
        deals_by_development: Counter = Counter()
        deal_value_by_development: Dict[str, float] = defaultdict(float)
        deals_by_date: Counter = Counter()
        deal_value_by_date: Dict[str, float] = defaultdict(float)
        total_deal_value = 0.0

        for deal in deals:
            development = category_label(deal.development, NO_DEVELOPMENT)
            deals_by_development[development] += 1
            amount = deal.amount
            if amount:
                total_deal_value += amount
                deal_value_by_development[development] += amount
            day = self.calendar.date_key(deal.created_time)
            if day:
                deals_by_date[day] += 1
                if amount:
                    deal_value_by_date[day] += amount

        leads_by_date: Counter = Counter()
        for lead in leads:
            day = self.calendar.date_key(lead.created_time)
            if day:
                leads_by_date[day] += 1

        leads_discard_reasons = Counter(filter(None, (category_label(l.discard_reason) for l in leads)))
        deals_discard_reasons = Counter(filter(None, (category_label(d.discard_reason) for d in deals)))
        discarded_leads = sum(leads_discard_reasons.values())

        leads_by_source = Counter(category_label(lead.source, NO_SOURCE) for lead in leads)
        deals_by_source = Counter(category_label(deal.source, NO_SOURCE) for deal in deals)
        total_with_source = sum(leads_by_source.values())

        # Weekend or outside 08:00-20:30; wider than the first-contact window
        outside = sum(
            1 for lead in leads
            if lead.created_time and self.calendar.is_outside_business_hours(lead.created_time)
        )

        return {
            "leads_by_status": dict(leads_by_status),
            "deals_by_stage": dict(deals_by_stage),
            "total_deal_value": total_deal_value,
            "average_deal_value": total_deal_value / len(deals) if deals else 0.0,
            "leads_by_development": dict(leads_by_development),
            "deals_by_development": dict(deals_by_development),
            "deal_value_by_development": dict(deal_value_by_development),
            "leads_by_date": dict(leads_by_date),
            "deals_by_date": dict(deals_by_date),
            "deal_value_by_date": dict(deal_value_by_date),
            "leads_funnel": dict(leads_by_status.most_common()),
            "deals_funnel": dict(deals_by_stage.most_common()),
            "leads_discard_reasons": dict(leads_discard_reasons),
            "deals_discard_reasons": dict(deals_discard_reasons),
            "conversion_rate": _pct(len(deals), len(leads)),
            "discarded_leads": discarded_leads,
            "discarded_leads_percentage": _pct(discarded_leads, len(leads)),
            "leads_by_source": dict(leads_by_source),
            "deals_by_source": dict(deals_by_source),
            "conversion_by_source": {
                src: _pct(deals_by_source.get(src, 0), count)
                for src, count in leads_by_source.items()
            },
            "channel_concentration": {
                src: _pct(count, total_with_source)
                for src, count in leads_by_source.items()
            },
            "leads_by_owner": dict(Counter(category_label(lead.owner_name, NO_OWNER) for lead in leads)),
            "deals_by_owner": dict(Counter(category_label(deal.owner_name, NO_OWNER) for deal in deals)),
            "leads_outside_business_hours": outside,
            "leads_outside_business_hours_percentage": _pct(outside, len(leads)),
        }


# ============================================================================
# Time to first contact
# ============================================================================

class FirstContactAnalyzer:
    """Minutes from lead creation to first contact.

    Only leads created inside the 08:30-20:30 business window count. The
    elapsed time itself is wall-clock minutes, nights and weekends included.
    """

    def __init__(self, calendar: BusinessCalendar, debug: bool = False):
        self.calendar = calendar
        self.debug = debug

    def _minutes_to_contact(self, lead: Lead, created: datetime,
                            activities: List[Activity]) -> Tuple[Optional[float], Optional[datetime], bool]:
        raw = lead.time_between_contact
        if raw is not None:
            return _to_minutes(raw), None, True

        recorded = lead.first_contact_time
        if recorded:
            # A recorded but unparseable contact time drops the lead
            contact = parse_ts(recorded)
        else:
            stamps = [parse_ts(a.created_time) for a in activities]
            stamps = [s for s in stamps if s is not None]
            contact = min(stamps) if stamps else None
        if contact is None:
            return None, None, False
        return float(math.floor((contact - created).total_seconds() / 60)), contact, False

    def analyze(self, leads: List[Lead], activities: List[Activity]) -> Dict[str, Any]:
        activities_by_lead = ActivityCache.by_lead(activities)
        counters = Counter(leads_total=len(leads))
        samples: List[Dict[str, Any]] = []
        first_contact_times: List[FirstContactTime] = []
        times_by_owner: Dict[str, List[float]] = defaultdict(list)

        for lead in leads:
            created_raw = lead.created_time
            created = parse_ts(created_raw)
            if created is None:
                continue
            counters["leads_with_created_time"] += 1

            if not self.calendar.is_within_business_window(created):
                counters["leads_created_outside_window"] += 1
                continue
            counters["leads_created_within_window"] += 1

            minutes, contact, used_field = self._minutes_to_contact(
                lead, created, activities_by_lead.get(lead.id, []),
            )
            if minutes is None:
                continue
            counters["leads_used_tiempo_field" if used_field else "leads_computed_from_dates"] += 1

            if minutes < 0:
                counters["leads_negative_diff"] += 1
                continue
            if minutes > MAX_CONTACT_MINUTES:
                continue

            first_contact_times.append(FirstContactTime(
                lead_id=lead.id,
                time_to_contact=minutes,
                owner=lead.owner_name,
                created_time=str(created_raw),
            ))
            times_by_owner[category_label(lead.owner_name, NO_OWNER)].append(minutes)

            if self.debug:
                samples.append({
                    "lead_id": lead.id,
                    "owner": lead.owner_name,
                    "created_time": str(created_raw),
                    "contact_time": contact.isoformat() if contact else str(lead.first_contact_time or ""),
                    "used_tiempo_field": used_field,
                    "minutes": minutes,
                })

        all_minutes = [fct.time_to_contact for fct in first_contact_times]
        average = _round1(sum(all_minutes) / len(all_minutes)) if all_minutes else 0.0
        by_owner = {
            owner: _round1(sum(times) / len(times))
            for owner, times in times_by_owner.items() if times
        }

        if self.debug:
            self._log_summary(counters, all_minutes, average, samples)

        return {
            "first_contact_times": first_contact_times,
            "average_time_to_first_contact": average,
            "average_time_to_first_contact_by_owner": by_owner,
        }

    @staticmethod
    def _log_summary(counters: Counter, minutes: List[float], average: float,
                     samples: List[Dict[str, Any]]):
        ordered = sorted(minutes)

        def pick(p: int) -> Optional[float]:
            if not ordered:
                return None
            return ordered[min(len(ordered) - 1, int(p / 100 * len(ordered)))]

        by_minutes = sorted(samples, key=lambda s: s["minutes"])
        logger.debug(
            "First contact summary: %s included=%d avg=%s min=%s p50=%s p90=%s p95=%s max=%s",
            dict(counters), len(ordered), average,
            ordered[0] if ordered else None, pick(50), pick(90), pick(95),
            ordered[-1] if ordered else None,
        )
        logger.debug("First contact top %d: %s", DEBUG_SAMPLE_SIZE, by_minutes[::-1][:DEBUG_SAMPLE_SIZE])
        logger.debug("First contact bottom %d: %s", DEBUG_SAMPLE_SIZE, by_minutes[:DEBUG_SAMPLE_SIZE])


# ============================================================================
# Lead quality
# ============================================================================

class QualityAnalyzer:
    """A quality lead was contacted AND showed interest."""

    @staticmethod
    def _related_deal(lead: Lead, deal: Deal) -> bool:
        # The first rule whose inputs are present decides for this deal
        account = deal.account_name
        if lead.email and account:
            return _mutually_contains(lead.email, account)
        if lead.full_name and account:
            return _mutually_contains(lead.full_name, account)
        if lead.source and deal.source and lead.source == deal.source:
            return _contains_any(deal.stage, ADVANCED_STAGES)
        return False

    def is_quality(self, lead: Lead, deals: List[Deal], contacted_ids: set) -> bool:
        contacted = bool(lead.first_contact_time) or lead.id in contacted_ids
        if not contacted:
            return False
        return (
            lead.requested_visit
            or _contains_any(lead.status, INTEREST_STATUSES)
            or any(self._related_deal(lead, deal) for deal in deals)
        )

    def analyze(self, leads: List[Lead], deals: List[Deal],
                activities: List[Activity]) -> Dict[str, Any]:
        contacted_ids = {a.lead_id for a in activities if a.lead_id}
        quality = [lead for lead in leads if self.is_quality(lead, deals, contacted_ids)]
        return {
            "quality_leads": len(quality),
            "quality_leads_percentage": _pct(len(quality), len(leads)),
            "quality_leads_by_source": dict(Counter(category_label(l.source, NO_SOURCE) for l in quality)),
        }


# ============================================================================
# Temporal buckets
# ============================================================================

class TemporalAnalyzer:
    """Weekly / monthly counts and the daily conversion series."""

    def __init__(self, calendar: BusinessCalendar):
        self.calendar = calendar

    def analyze(self, leads: List[Lead], deals: List[Deal],
                leads_by_date: Dict[str, int], deals_by_date: Dict[str, int]) -> Dict[str, Any]:
        leads_by_week: Counter = Counter()
        leads_by_month: Counter = Counter()
        for lead in leads:
            week = self.calendar.week_key(lead.created_time)
            if week:
                leads_by_week[week] += 1
                leads_by_month[self.calendar.month_key(lead.created_time)] += 1

        deals_by_week: Counter = Counter()
        deals_by_month: Counter = Counter()
        for deal in deals:
            week = self.calendar.week_key(deal.created_time)
            if week:
                deals_by_week[week] += 1
                deals_by_month[self.calendar.month_key(deal.created_time)] += 1

        return {
            "leads_by_week": dict(leads_by_week),
            "deals_by_week": dict(deals_by_week),
            "leads_by_month": dict(leads_by_month),
            "deals_by_month": dict(deals_by_month),
            "conversion_by_date": {
                day: _pct(deals_by_date.get(day, 0), count)
                for day, count in leads_by_date.items()
            },
        }


class ActivityAnalyzer:
    """Calls and Tasks by type and by owner."""

    def analyze(self, activities: List[Activity]) -> Dict[str, Any]:
        return {
            "activities_by_type": dict(Counter(category_label(a.activity_type, UNKNOWN_ACTIVITY) for a in activities)),
            "activities_by_owner": dict(Counter(category_label(a.owner_name, NO_OWNER) for a in activities)),
        }


# ============================================================================
# Engine
# ============================================================================

class ZohoStatsEngine:
    """Resolves records for a filter and runs every analyzer over them."""

    def __init__(self, resolver: DataSourceResolver = None, fetcher: ZohoFetcher = None,
                 mirror: ZohoMirror = None, calendar: BusinessCalendar = None,
                 settings: ZohoSettings = None):
        settings = settings or ZohoSettings.from_env()
        self.fetcher = fetcher or ZohoFetcher(ZohoClient(settings=settings))
        self.mirror = mirror or ZohoMirror()
        self.resolver = resolver or DataSourceResolver(self.mirror, self.fetcher)
        self.calendar = calendar or BusinessCalendar(settings.business_utc_offset_minutes)

    def _normalize(self, stats_filter: StatsFilter) -> StatsFilter:
        """Naive filter bounds are business-local wall-clock times."""
        def aware(dt):
            if dt is not None and dt.tzinfo is None:
                return dt.replace(tzinfo=self.calendar.tz)
            return dt
        return dataclasses.replace(
            stats_filter,
            start_date=aware(stats_filter.start_date),
            end_date=aware(stats_filter.end_date),
        )

    def _count_closed_won(self, stats_filter: StatsFilter, deals: List[Deal],
                          won_base: List[Deal], from_local_mirror: bool) -> int:
        if not stats_filter.has_date_range:
            return sum(1 for d in won_base if is_won_stage(d.stage))

        start_key = self.calendar.date_key(stats_filter.start_date)
        end_key = self.calendar.date_key(stats_filter.end_date)
        if from_local_mirror:
            try:
                return self.mirror.count_closed_won_deals(stats_filter, start_key, end_key)
            except Exception as e:
                logger.warning("Mirror closed-won count failed; counting filtered deals: %s", e)
                return sum(1 for d in deals if is_won_stage(d.stage))

        return sum(
            1 for d in won_base
            if is_won_stage(d.stage) and self.calendar.is_date_key_in_range(
                deal_close_date_key(d, self.calendar), start_key, end_key,
            )
        )

    async def compute_stats(self, stats_filter: StatsFilter = None, prefer_local: bool = True,
                            debug: bool = False) -> StatsResult:
        stats_filter = self._normalize(stats_filter or StatsFilter())
        if debug:
            logger.debug("compute_stats filter=%s prefer_local=%s", stats_filter, prefer_local)

        # ------------------------------------------------------------------
        # 1. Resolve records; remote data still needs dev/date filtering
        # ------------------------------------------------------------------
        records = await self.resolver.resolve(stats_filter, prefer_local)
        leads, deals = records.leads, records.deals
        won_base = deals

        if not records.from_local_mirror:
            record_filter = RecordFilter(self.calendar)
            developments = stats_filter.development_list()
            leads = record_filter.by_development(leads, developments)
            deals = record_filter.by_development(deals, developments)
            # Deals close in a different month than they are created in
            won_base = deals
            if stats_filter.has_date_range:
                leads = record_filter.leads_by_date(leads, stats_filter)
                deals = record_filter.deals_by_date(deals, stats_filter)
            logger.debug("Remote records after dev/date filters: %d leads, %d deals", len(leads), len(deals))

        # ------------------------------------------------------------------
        # 2-3. Common filters and closed-won by close date
        # ------------------------------------------------------------------
        leads, deals, won_base = RecordFilter.common(leads, deals, won_base, stats_filter)
        closed_won = self._count_closed_won(stats_filter, deals, won_base, records.from_local_mirror)

        # ------------------------------------------------------------------
        # 4. Breakdowns
        # ------------------------------------------------------------------
        metrics: Dict[str, Any] = BreakdownAnalyzer(self.calendar).analyze(leads, deals)

        # ------------------------------------------------------------------
        # 5-6, 9. Activity-backed metrics; each degrades independently
        # ------------------------------------------------------------------
        activity_cache = ActivityCache(self.fetcher)

        try:
            activities = await activity_cache.get()
            metrics.update(FirstContactAnalyzer(self.calendar, debug).analyze(leads, activities))
        except Exception as e:
            logger.warning("First-contact timing failed: %s", e)

        try:
            activities = await activity_cache.get()
            metrics.update(QualityAnalyzer().analyze(leads, deals, activities))
        except Exception as e:
            logger.warning("Lead quality computation failed: %s", e)

        # ------------------------------------------------------------------
        # 7-8. Temporal buckets and lifecycle funnel
        # ------------------------------------------------------------------
        metrics.update(TemporalAnalyzer(self.calendar).analyze(
            leads, deals, metrics["leads_by_date"], metrics["deals_by_date"],
        ))

        try:
            activities = await activity_cache.get()
            metrics.update(ActivityAnalyzer().analyze(activities))
        except Exception as e:
            logger.warning("Activity breakdown failed: %s", e)

        result = StatsResult(
            total_leads=len(leads),
            total_deals=len(deals),
            from_local_mirror=records.from_local_mirror,
            closed_won_count=closed_won,
            lifecycle_funnel=LifecycleFunnel(leads=len(leads), deals=len(deals), closed_won=closed_won),
            **metrics,
        )
        logger.info(
            "Stats computed: %d leads, %d deals, %d closed-won (source: %s)",
            result.total_leads, result.total_deals, closed_won,
            "mirror" if records.from_local_mirror else "zoho",
        )
        return result


# ============================================================================
# Public surface
# ============================================================================

_engine: Optional[ZohoStatsEngine] = None


def get_engine() -> ZohoStatsEngine:
    """Process-wide engine, so every caller shares one token cache."""
    global _engine
    if _engine is None:
        _engine = ZohoStatsEngine()
    return _engine


async def get_stats(stats_filter: StatsFilter = None, prefer_local: bool = True,
                    debug: bool = False) -> StatsResult:
    return await get_engine().compute_stats(stats_filter, prefer_local, debug)


def previous_month_range(now: datetime, calendar: BusinessCalendar) -> Tuple[datetime, datetime]:
    """First instant to last millisecond of the month before ``now`` (business-local)."""
    local = calendar.localize(now)
    this_month = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    last_month_end = this_month - timedelta(milliseconds=1)
    last_month_start = last_month_end.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return last_month_start, last_month_end


async def get_stats_for_previous_month(stats_filter: StatsFilter = None, prefer_local: bool = True,
                                       debug: bool = False, now: datetime = None) -> StatsResult:
    engine = get_engine()
    start, end = previous_month_range(now or datetime.now(engine.calendar.tz), engine.calendar)
    stats_filter = dataclasses.replace(stats_filter or StatsFilter(), start_date=start, end_date=end)
    return await engine.compute_stats(stats_filter, prefer_local, debug)


async def get_product_partners(deal_id: str) -> List[ProductPartner]:
    return await ProductPartnerResolver(get_engine().fetcher.client).get_partners(deal_id)


async def test_connection() -> bool:
    return await get_engine().fetcher.client.test_connection()


# ============================================================================
# Standalone entry point
# ============================================================================

def _parse_date(value: str) -> datetime:
    return datetime.fromisoformat(value)


def main(argv: List[str] = None):
    parser = argparse.ArgumentParser(description="Compute Zoho CRM stats")
    parser.add_argument("--development", action="append", default=[],
                        help="Development to include (repeatable)")
    parser.add_argument("--start-date", type=_parse_date, help="ISO date/time, business-local if naive")
    parser.add_argument("--end-date", type=_parse_date, help="ISO date/time, business-local if naive")
    parser.add_argument("--source")
    parser.add_argument("--owner")
    parser.add_argument("--status")
    parser.add_argument("--previous-month", action="store_true", help="Use last calendar month")
    parser.add_argument("--remote", action="store_true", help="Skip the local mirror")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    stats_filter = StatsFilter(
        developments=tuple(args.development),
        start_date=args.start_date,
        end_date=args.end_date,
        source=args.source,
        owner=args.owner,
        status=args.status,
    )
    if args.previous_month:
        coro = get_stats_for_previous_month(stats_filter, not args.remote, args.debug)
    else:
        coro = get_stats(stats_filter, not args.remote, args.debug)

    result = asyncio.run(coro)
    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
