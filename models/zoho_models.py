"""
Zoho Stats Hub — Zoho CRM Record & Stats Models
=================================================

Loosely-typed CRM records (Lead, Deal, Activity) with named accessors over
the raw field bag, the immutable stats filter, and the StatsResult shape
returned to the dashboard.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


# ─── Raw Records ────────────────────────────────────────────

def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value is False


@dataclass
class ZohoRecord:
    """A CRM record: an opaque id plus whatever fields Zoho returned."""
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return str(self.data.get("id", ""))

    def get(self, *names: str, default: Any = None) -> Any:
        """Return the first non-blank value among ``names``, in order."""
        for name in names:
            value = self.data.get(name)
            if not _is_blank(value):
                return value
        return default

    def lookup_name(self, name: str) -> Optional[str]:
        """Read the ``name`` of a lookup field like Owner or Account_Name."""
        value = self.data.get(name)
        if isinstance(value, dict) and not _is_blank(value.get("name")):
            return str(value["name"])
        return None

    def lookup_id(self, name: str) -> Optional[str]:
        value = self.data.get(name)
        if isinstance(value, dict) and value.get("id"):
            return str(value["id"])
        return None

    @property
    def owner_name(self) -> Optional[str]:
        return self.lookup_name("Owner")

    @property
    def source(self) -> Optional[str]:
        return self.get("Lead_Source")

    @property
    def development(self) -> Optional[str]:
        # Some Zoho layouts carry the field as "Desarollo"
        return self.get("Desarrollo", "Desarollo")

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data)


class Lead(ZohoRecord):
    """Zoho Lead."""

    @property
    def status(self) -> Optional[str]:
        return self.get("Lead_Status")

    @property
    def created_time(self) -> Optional[str]:
        return self.get("Creacion_de_Lead", "Created_Time")

    @property
    def discard_reason(self) -> Optional[str]:
        return self.get("Raz_n_de_descarte", "Motivo_Descarte")

    @property
    def first_contact_time(self) -> Optional[str]:
        return self.get("First_Contact_Time", "Ultimo_conctacto")

    @property
    def time_between_contact(self) -> Any:
        # 0 is a legitimate value here, so only None counts as missing
        return self.data.get("Tiempo_entre_primer_contacto")

    @property
    def requested_visit(self) -> bool:
        return self.data.get("Solicito_visita_cita") is True

    @property
    def email(self) -> Optional[str]:
        return self.get("Email")

    @property
    def full_name(self) -> Optional[str]:
        return self.get("Full_Name")


class Deal(ZohoRecord):
    """Zoho Deal."""

    CLOSE_DATE_FIELDS: Tuple[str, ...] = (
        "Closing_Date", "Closed_Time", "Closed_Date", "Modified_Time",
    )

    @property
    def stage(self) -> Optional[str]:
        return self.get("Stage")

    @property
    def created_time(self) -> Optional[str]:
        return self.get("Created_Time")

    @property
    def amount(self) -> float:
        value = self.data.get("Amount")
        if _is_blank(value):
            return 0.0
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @property
    def discard_reason(self) -> Optional[str]:
        return self.get("Motivo_Descarte")

    @property
    def account_name(self) -> Optional[str]:
        return self.lookup_name("Account_Name")

    def close_date_candidates(self) -> List[Any]:
        """Close-date values in fallback order (may contain blanks)."""
        return [self.data.get(name) for name in self.CLOSE_DATE_FIELDS]


class Activity(ZohoRecord):
    """Zoho Call or Task, tagged with Activity_Type by the fetcher."""

    @property
    def activity_type(self) -> Optional[str]:
        return self.get("Activity_Type")

    @property
    def lead_id(self) -> Optional[str]:
        return self.lookup_id("Who_Id")

    @property
    def created_time(self) -> Optional[str]:
        return self.get("Created_Time")


class RecordKind(str, Enum):
    LEADS = "Leads"
    DEALS = "Deals"
    ACTIVITIES = "Activities"


# ─── Filter & Record Set ────────────────────────────────────

@dataclass(frozen=True)
class StatsFilter:
    """Immutable input to one aggregation run."""
    development: Optional[str] = None
    developments: Tuple[str, ...] = ()
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    source: Optional[str] = None
    owner: Optional[str] = None
    status: Optional[str] = None

    def development_list(self) -> List[str]:
        """``developments`` wins over the single ``development`` value."""
        if self.developments:
            return [d for d in self.developments if isinstance(d, str)]
        if isinstance(self.development, str):
            return [self.development]
        return []

    @property
    def has_date_range(self) -> bool:
        return self.start_date is not None or self.end_date is not None


@dataclass
class ReconciledRecordSet:
    leads: List[Lead]
    deals: List[Deal]
    from_local_mirror: bool


# ─── Stats Output ───────────────────────────────────────────

class FirstContactTime(BaseModel):
    """Minutes from lead creation to first contact, for one lead."""
    lead_id: str
    time_to_contact: float
    owner: Optional[str] = None
    created_time: str


class LifecycleFunnel(BaseModel):
    leads: int = 0
    deals: int = 0
    closed_won: int = 0


class ProductPartner(BaseModel):
    partner_name: str
    share_percent: float = 0.0


class StatsResult(BaseModel):
    """Full statistics for one filter. Every field defaults to zero/empty."""
    total_leads: int = 0
    total_deals: int = 0
    from_local_mirror: bool = False

    leads_by_status: Dict[str, int] = Field(default_factory=dict)
    deals_by_stage: Dict[str, int] = Field(default_factory=dict)
    total_deal_value: float = 0.0
    average_deal_value: float = 0.0

    leads_by_development: Dict[str, int] = Field(default_factory=dict)
    deals_by_development: Dict[str, int] = Field(default_factory=dict)
    deal_value_by_development: Dict[str, float] = Field(default_factory=dict)

    leads_by_date: Dict[str, int] = Field(default_factory=dict)
    deals_by_date: Dict[str, int] = Field(default_factory=dict)
    deal_value_by_date: Dict[str, float] = Field(default_factory=dict)

    leads_funnel: Dict[str, int] = Field(default_factory=dict)
    deals_funnel: Dict[str, int] = Field(default_factory=dict)
    lifecycle_funnel: LifecycleFunnel = Field(default_factory=LifecycleFunnel)
    closed_won_count: int = 0

    leads_discard_reasons: Dict[str, int] = Field(default_factory=dict)
    deals_discard_reasons: Dict[str, int] = Field(default_factory=dict)
    discarded_leads: int = 0
    discarded_leads_percentage: float = 0.0

    conversion_rate: float = 0.0
    average_time_to_first_contact: float = 0.0
    average_time_to_first_contact_by_owner: Dict[str, float] = Field(default_factory=dict)
    first_contact_times: List[FirstContactTime] = Field(default_factory=list)
    leads_outside_business_hours: int = 0
    leads_outside_business_hours_percentage: float = 0.0

    leads_by_source: Dict[str, int] = Field(default_factory=dict)
    deals_by_source: Dict[str, int] = Field(default_factory=dict)
    conversion_by_source: Dict[str, float] = Field(default_factory=dict)
    channel_concentration: Dict[str, float] = Field(default_factory=dict)

    leads_by_owner: Dict[str, int] = Field(default_factory=dict)
    deals_by_owner: Dict[str, int] = Field(default_factory=dict)

    quality_leads: int = 0
    quality_leads_percentage: float = 0.0
    quality_leads_by_source: Dict[str, int] = Field(default_factory=dict)

    leads_by_week: Dict[str, int] = Field(default_factory=dict)
    deals_by_week: Dict[str, int] = Field(default_factory=dict)
    leads_by_month: Dict[str, int] = Field(default_factory=dict)
    deals_by_month: Dict[str, int] = Field(default_factory=dict)
    conversion_by_date: Dict[str, float] = Field(default_factory=dict)

    activities_by_type: Dict[str, int] = Field(default_factory=dict)
    activities_by_owner: Dict[str, int] = Field(default_factory=dict)
