"""
Zoho Stats Hub — Zoho CRM Router
==================================
Dashboard endpoints over the Zoho stats engine.

Endpoints:
  GET /api/zoho/stats                     - Stats for a filter
  GET /api/zoho/stats/previous-month      - Stats for last calendar month
  GET /api/zoho/deals/{deal_id}/partners  - Product partners of a deal
  GET /api/zoho/health                    - Token + one-lead connectivity check
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from models.zoho_models import ProductPartner, StatsFilter, StatsResult
from scripts import zoho_stats_analyzer as stats
from scripts.lib.errors import ConfigurationError, HubError
from scripts.lib.logger import setup_logger

logger = setup_logger("zoho_router")

router = APIRouter(prefix="/api/zoho", tags=["zoho"])


def _to_http(e: HubError) -> HTTPException:
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=503, detail=e.message)
    return HTTPException(status_code=502, detail=e.message)


@router.get("/stats", response_model=StatsResult)
async def zoho_stats(
    development: Optional[List[str]] = Query(None, description="Development(s) to include"),
    start_date: Optional[datetime] = Query(None, description="Range start (business-local if naive)"),
    end_date: Optional[datetime] = Query(None, description="Range end (business-local if naive)"),
    source: Optional[str] = Query(None, description="Lead source"),
    owner: Optional[str] = Query(None, description="Owner (advisor) name"),
    status: Optional[str] = Query(None, description="Lead status / deal stage"),
    prefer_local: bool = Query(True, description="Read the local mirror first"),
    debug: bool = Query(False, description="Log aggregation diagnostics"),
):
    """Compute Zoho CRM stats for the given filter."""
    stats_filter = StatsFilter(
        developments=tuple(development or ()),
        start_date=start_date,
        end_date=end_date,
        source=source,
        owner=owner,
        status=status,
    )
    try:
        return await stats.get_stats(stats_filter, prefer_local=prefer_local, debug=debug)
    except HubError as e:
        logger.error("Zoho stats failed: %s", e)
        raise _to_http(e)
    except Exception as e:
        logger.error("Zoho stats failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to compute Zoho stats")


@router.get("/stats/previous-month", response_model=StatsResult)
async def zoho_stats_previous_month(
    development: Optional[List[str]] = Query(None, description="Development(s) to include"),
    prefer_local: bool = Query(True, description="Read the local mirror first"),
    debug: bool = Query(False, description="Log aggregation diagnostics"),
):
    """Stats for the previous calendar month."""
    stats_filter = StatsFilter(developments=tuple(development or ()))
    try:
        return await stats.get_stats_for_previous_month(
            stats_filter, prefer_local=prefer_local, debug=debug,
        )
    except HubError as e:
        logger.error("Zoho previous-month stats failed: %s", e)
        raise _to_http(e)
    except Exception as e:
        logger.error("Zoho previous-month stats failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to compute Zoho stats")


@router.get("/deals/{deal_id}/partners", response_model=List[ProductPartner])
async def zoho_deal_partners(deal_id: str):
    """Partners (and ownership share) of the product sold in a deal."""
    return await stats.get_product_partners(deal_id)


@router.get("/health")
async def zoho_health():
    """Check Zoho credentials and API reachability."""
    connected = await stats.test_connection()
    return {"service": "zoho_crm", "connected": connected}
