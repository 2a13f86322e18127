"""Tests for the Zoho stats engine and its analyzers."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from models.zoho_models import Activity, Deal, Lead, RecordKind, ReconciledRecordSet, StatsFilter
from scripts import zoho_stats_analyzer as analyzer
from scripts.lib.business_calendar import BusinessCalendar
from scripts.zoho_stats_analyzer import (
    FirstContactAnalyzer,
    QualityAnalyzer,
    ZohoStatsEngine,
    category_label,
    is_won_stage,
    previous_month_range,
)

CAL = BusinessCalendar(-360)
CDMX = timezone(timedelta(hours=-6))


def ts(day, hour=10, minute=0, month=1, year=2024):
    return datetime(year, month, day, hour, minute, tzinfo=CDMX).isoformat()


def lead(lead_id, created, **fields):
    return Lead({"id": lead_id, "Created_Time": created, **fields})


def deal(deal_id, created, **fields):
    return Deal({"id": deal_id, "Created_Time": created, **fields})


def make_engine(records, activities=None, mirror=None):
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=records)
    fetcher = MagicMock()

    async def fetch_all(kind):
        assert kind == RecordKind.ACTIVITIES
        return activities or []

    fetcher.fetch_all = AsyncMock(side_effect=fetch_all)
    return ZohoStatsEngine(
        resolver=resolver, fetcher=fetcher, mirror=mirror or MagicMock(), calendar=CAL,
    )


def remote(leads, deals):
    return ReconciledRecordSet(leads=leads, deals=deals, from_local_mirror=False)


# ─── Riviera scenario ───────────────────────────────────────

def riviera_records():
    leads = [lead(f"L{i}", ts(i + 2), Desarrollo="Riviera") for i in range(10)]
    leads += [
        lead("other-dev", ts(5), Desarrollo="Costa"),
        lead("february", ts(3, month=2), Desarrollo="Riviera"),
        lead("typo-field", ts(3, month=2), Desarollo=" riviera "),
    ]
    deals = [
        deal("D1", ts(5), Desarrollo="Riviera", Stage="Ganado", Closing_Date="2024-01-20", Amount=1000),
        deal("D2", ts(10), Desarrollo="Riviera", Stage="Cerrado Ganado", Closing_Date="2024-01-25", Amount=3000),
        # Created in December, closed won mid January
        deal("D3", ts(10, month=12, year=2023), Desarrollo="Riviera", Stage="Won", Closing_Date="2024-01-15"),
        deal("old-open", ts(10, month=12, year=2023), Desarrollo="Riviera", Stage="Negociación"),
        deal("costa", ts(6), Desarrollo="Costa", Stage="Ganado", Closing_Date="2024-01-20"),
    ]
    return leads, deals


RIVIERA_JANUARY = StatsFilter(
    development="Riviera",
    start_date=datetime(2024, 1, 1),
    end_date=datetime(2024, 1, 31, 23, 59, 59),
)


class TestRivieraScenario:
    @pytest.mark.asyncio
    async def test_counts(self):
        leads, deals = riviera_records()
        engine = make_engine(remote(leads, deals))

        result = await engine.compute_stats(RIVIERA_JANUARY)

        assert result.total_leads == 10
        assert result.total_deals == 3
        assert result.closed_won_count == 3
        assert result.lifecycle_funnel.model_dump() == {"leads": 10, "deals": 3, "closed_won": 3}
        assert result.conversion_rate == 30.0
        assert result.from_local_mirror is False

    @pytest.mark.asyncio
    async def test_value_and_breakdowns(self):
        leads, deals = riviera_records()
        result = await make_engine(remote(leads, deals)).compute_stats(RIVIERA_JANUARY)

        assert result.total_deal_value == 4000
        assert result.average_deal_value == pytest.approx(4000 / 3)
        assert result.deals_by_stage == {"Ganado": 1, "Cerrado Ganado": 1, "Won": 1}
        assert result.leads_by_development == {"Riviera": 10}
        assert result.leads_by_status == {"Sin Estado": 10}
        assert result.leads_by_source == {"Sin Fuente": 10}
        assert result.deal_value_by_date == {"2024-01-05": 1000, "2024-01-10": 3000}
        assert result.leads_by_month == {"2024-01": 10}

    @pytest.mark.asyncio
    async def test_without_date_range_counts_all_won_of_development(self):
        leads, deals = riviera_records()
        result = await make_engine(remote(leads, deals)).compute_stats(StatsFilter(development="riviera"))

        # Dev match is trimmed and case-insensitive and accepts the typo field
        assert result.total_leads == 12
        assert result.total_deals == 4
        assert result.closed_won_count == 3


class TestCommonFilters:
    @pytest.mark.asyncio
    async def test_source_owner_status_filters(self):
        leads = [
            lead("1", ts(2), Lead_Source="Facebook", Owner={"name": "Ana"}, Lead_Status="Nuevo"),
            lead("2", ts(2), Lead_Source="Facebook", Owner={"name": "Luis"}, Lead_Status="Nuevo"),
            lead("3", ts(2), Lead_Source="Web", Owner={"name": "Ana"}, Lead_Status="Nuevo"),
        ]
        deals = [
            deal("a", ts(3), Lead_Source="Facebook", Owner={"name": "Ana"}, Stage="Nuevo"),
            deal("b", ts(3), Lead_Source="Facebook", Owner={"name": "Ana"}, Stage="Ganado"),
        ]
        stats_filter = StatsFilter(source="Facebook", owner="Ana", status="Nuevo")

        result = await make_engine(remote(leads, deals)).compute_stats(stats_filter)

        assert result.total_leads == 1
        assert result.total_deals == 1
        assert result.leads_by_owner == {"Ana": 1}
        # "b" is won but filtered out by the status filter
        assert result.closed_won_count == 0


class TestMirrorClosedWon:
    @pytest.mark.asyncio
    async def test_mirror_count_used_with_date_range(self):
        mirror = MagicMock()
        mirror.count_closed_won_deals.return_value = 7
        records = ReconciledRecordSet([lead("1", ts(2))], [deal("a", ts(3), Stage="Ganado")], True)

        result = await make_engine(records, mirror=mirror).compute_stats(RIVIERA_JANUARY)

        assert result.closed_won_count == 7
        assert result.from_local_mirror is True
        passed_filter, start_key, end_key = mirror.count_closed_won_deals.call_args.args
        assert (start_key, end_key) == ("2024-01-01", "2024-01-31")
        assert passed_filter.development == "Riviera"

    @pytest.mark.asyncio
    async def test_mirror_count_failure_falls_back_to_filtered_deals(self):
        mirror = MagicMock()
        mirror.count_closed_won_deals.side_effect = RuntimeError("rpc failed")
        records = ReconciledRecordSet(
            [lead("1", ts(2))],
            [deal("a", ts(3), Stage="Ganado"), deal("b", ts(3), Stage="Perdido")],
            True,
        )

        result = await make_engine(records, mirror=mirror).compute_stats(RIVIERA_JANUARY)

        assert result.closed_won_count == 1

    @pytest.mark.asyncio
    async def test_mirror_data_not_refiltered(self):
        # Mirror rows are already filtered by the query
        records = ReconciledRecordSet([lead("1", ts(2, month=6), Desarrollo="Otro")], [], True)
        mirror = MagicMock()
        mirror.count_closed_won_deals.return_value = 0

        result = await make_engine(records, mirror=mirror).compute_stats(RIVIERA_JANUARY)

        assert result.total_leads == 1


# ─── First contact timing ───────────────────────────────────

class TestFirstContact:
    def test_lead_created_at_seven_is_excluded(self):
        leads = [
            lead("early", ts(15, 7, 0), First_Contact_Time=ts(15, 7, 1)),
            lead("on-time", ts(15, 9, 0), First_Contact_Time=ts(15, 9, 30)),
        ]

        metrics = FirstContactAnalyzer(CAL).analyze(leads, [])

        assert [f.lead_id for f in metrics["first_contact_times"]] == ["on-time"]
        assert metrics["average_time_to_first_contact"] == 30.0

    def test_tiempo_field_preferred_and_non_numeric_dropped(self):
        leads = [
            lead("field", ts(15), Tiempo_entre_primer_contacto="15", First_Contact_Time=ts(15, 12)),
            lead("zero", ts(15), Tiempo_entre_primer_contacto=0),
            lead("junk", ts(15), Tiempo_entre_primer_contacto="abc", First_Contact_Time=ts(15, 11)),
        ]

        metrics = FirstContactAnalyzer(CAL).analyze(leads, [])

        times = {f.lead_id: f.time_to_contact for f in metrics["first_contact_times"]}
        assert times == {"field": 15.0, "zero": 0.0}

    def test_earliest_activity_used_when_no_contact_field(self):
        leads = [lead("L1", ts(15, 10, 0), Owner={"name": "Ana"})]
        activities = [
            Activity({"id": "a2", "Who_Id": {"id": "L1"}, "Created_Time": ts(15, 11, 30)}),
            Activity({"id": "a1", "Who_Id": {"id": "L1"}, "Created_Time": ts(15, 10, 45)}),
            Activity({"id": "x", "Who_Id": {"id": "other"}, "Created_Time": ts(15, 10, 1)}),
        ]

        metrics = FirstContactAnalyzer(CAL).analyze(leads, activities)

        assert metrics["first_contact_times"][0].time_to_contact == 45.0
        assert metrics["average_time_to_first_contact_by_owner"] == {"Ana": 45.0}

    def test_whole_minutes_floored_and_bounds(self):
        leads = [
            lead("secs", ts(15, 10, 0), First_Contact_Time="2024-01-15T10:10:59-06:00"),
            lead("negative", ts(15, 10, 0), First_Contact_Time=ts(15, 9, 0)),
            lead("huge", ts(15, 10, 0), Tiempo_entre_primer_contacto=100_001),
        ]

        metrics = FirstContactAnalyzer(CAL).analyze(leads, [])

        assert [(f.lead_id, f.time_to_contact) for f in metrics["first_contact_times"]] == [("secs", 10.0)]

    def test_owner_average_rounded_to_one_decimal(self):
        leads = [
            lead("a", ts(15), Owner={"name": "Ana"}, Tiempo_entre_primer_contacto=10),
            lead("b", ts(15), Owner={"name": "Ana"}, Tiempo_entre_primer_contacto=11),
            lead("c", ts(15), Owner={"name": "Ana"}, Tiempo_entre_primer_contacto=11),
        ]

        metrics = FirstContactAnalyzer(CAL).analyze(leads, [])

        assert metrics["average_time_to_first_contact_by_owner"] == {"Ana": 10.7}

    def test_unparseable_contact_field_drops_lead(self):
        leads = [lead("L1", ts(15, 10, 0), First_Contact_Time="pendiente")]
        activities = [Activity({"id": "a1", "Who_Id": {"id": "L1"}, "Created_Time": ts(15, 10, 20)})]

        metrics = FirstContactAnalyzer(CAL).analyze(leads, activities)

        assert metrics["first_contact_times"] == []
        assert metrics["average_time_to_first_contact"] == 0.0

    @pytest.mark.asyncio
    async def test_timing_failure_leaves_defaults(self):
        engine = make_engine(remote([lead("1", ts(2))], []))
        with patch.object(FirstContactAnalyzer, "analyze", side_effect=ValueError("bad")):
            result = await engine.compute_stats(StatsFilter())

        assert result.average_time_to_first_contact == 0
        assert result.first_contact_times == []
        assert result.total_leads == 1


# ─── Quality, outside-hours, activities ────────────────────

class TestQuality:
    def test_contact_and_interest_required(self):
        leads = [
            lead("status", ts(2), Lead_Status="Contactado - Cotización", First_Contact_Time=ts(2, 11)),
            lead("visit", ts(2), Solicito_visita_cita=True),
            lead("no-contact", ts(2), Lead_Status="Interesado"),
            lead("no-interest", ts(2), Lead_Status="Nuevo", First_Contact_Time=ts(2, 11)),
        ]
        activities = [Activity({"id": "a", "Who_Id": {"id": "visit"}})]

        metrics = QualityAnalyzer().analyze(leads, [], activities)

        assert metrics["quality_leads"] == 2
        assert metrics["quality_leads_percentage"] == 50.0

    def test_last_contact_field_counts_as_contacted(self):
        contacted = lead("u", ts(2), Lead_Status="Interesado", Ultimo_conctacto=ts(3))

        assert QualityAnalyzer().is_quality(contacted, [], set()) is True

    def test_related_deal_rules(self):
        deals = [deal("d", ts(3), Account_Name={"name": "Maria Lopez"}, Stage="Nuevo")]
        by_name = lead("n", ts(2), Full_Name="maria lopez", First_Contact_Time=ts(2, 11))
        # Email present: the email rule decides and does not match
        by_email = lead("e", ts(2), Email="x@y.com", Full_Name="Maria Lopez", First_Contact_Time=ts(2, 11))

        quality = QualityAnalyzer()
        contacted = set()
        assert quality.is_quality(by_name, deals, contacted) is True
        assert quality.is_quality(by_email, deals, contacted) is False

    def test_same_source_needs_advanced_stage(self):
        deals = [deal("d", ts(3), Lead_Source="Web", Stage="Propuesta enviada")]
        matching = lead("m", ts(2), Lead_Source="Web", First_Contact_Time=ts(2, 11))

        assert QualityAnalyzer().is_quality(matching, deals, set()) is True
        deals[0].data["Stage"] = "Nuevo"
        assert QualityAnalyzer().is_quality(matching, deals, set()) is False


class TestEngineExtras:
    @pytest.mark.asyncio
    async def test_activities_and_outside_hours(self):
        leads = [
            lead("weekday", ts(15, 10)),
            lead("saturday", ts(13, 10)),
            lead("late", ts(15, 21)),
        ]
        activities = [
            Activity({"id": "1", "Activity_Type": "Call", "Owner": {"name": "Ana"}}),
            Activity({"id": "2", "Activity_Type": "Task"}),
            Activity({"id": "3"}),
        ]
        engine = make_engine(remote(leads, []), activities)

        result = await engine.compute_stats(StatsFilter())

        assert result.leads_outside_business_hours == 2
        assert result.leads_outside_business_hours_percentage == 66.67
        assert result.activities_by_type == {"Call": 1, "Task": 1, "Unknown": 1}
        assert result.activities_by_owner == {"Ana": 1, "Sin Asesor": 2}
        # Activities fetched once for all three activity metrics
        assert engine.fetcher.fetch_all.await_count == 1

    @pytest.mark.asyncio
    async def test_activity_failure_degrades_to_empty(self):
        engine = make_engine(remote([lead("1", ts(2))], []))
        engine.fetcher.fetch_all = AsyncMock(side_effect=RuntimeError("zoho down"))

        result = await engine.compute_stats(StatsFilter())

        assert result.activities_by_type == {}
        assert result.total_leads == 1

    @pytest.mark.asyncio
    async def test_empty_result_fully_shaped(self):
        result = await make_engine(remote([], [])).compute_stats(StatsFilter())

        assert result.total_leads == 0
        assert result.conversion_rate == 0
        assert result.leads_by_status == {}
        assert result.lifecycle_funnel.closed_won == 0

    @pytest.mark.asyncio
    async def test_funnels_sorted_by_count(self):
        leads = [lead(str(i), ts(2), Lead_Status=s) for i, s in enumerate(["A", "B", "B", "C", "C", "C"])]
        result = await make_engine(remote(leads, [])).compute_stats(StatsFilter())

        assert list(result.leads_funnel) == ["C", "B", "A"]
        assert result.conversion_by_date == {"2024-01-02": 0.0}


class TestNonTextFieldValues:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("fields,metric,expected", [
        ({"Lead_Source": 5}, "leads_by_source", {"5": 1}),
        ({"Desarrollo": ["Riviera", "Costa"]}, "leads_by_development", {"Riviera, Costa": 1}),
        ({"Raz_n_de_descarte": {"name": "Duplicado"}}, "leads_discard_reasons", {"Duplicado": 1}),
        ({"Lead_Status": ["Nuevo"]}, "leads_by_status", {"Nuevo": 1}),
        ({"Owner": {"name": 7}}, "leads_by_owner", {"7": 1}),
    ])
    async def test_breakdown_keys_are_text(self, fields, metric, expected):
        engine = make_engine(remote([lead("L1", ts(15), **fields)], []))

        result = await engine.compute_stats(StatsFilter())

        assert getattr(result, metric) == expected
        assert result.total_leads == 1

    @pytest.mark.asyncio
    async def test_list_stage_and_numeric_source_on_deals(self):
        deals = [deal("D1", ts(15), Stage=["Ganado"], Lead_Source=3, Desarrollo={"name": "Riviera"})]
        engine = make_engine(remote([], deals))

        result = await engine.compute_stats(StatsFilter())

        assert result.deals_by_stage == {"Ganado": 1}
        assert result.deals_by_source == {"3": 1}
        assert result.deals_by_development == {"Riviera": 1}
        assert result.closed_won_count == 1

    @pytest.mark.asyncio
    async def test_multi_select_development_matches_filter(self):
        leads = [
            lead("both", ts(15), Desarrollo=["Riviera", "Costa"]),
            lead("other", ts(15), Desarrollo=["Bosque"]),
        ]
        engine = make_engine(remote(leads, []))

        result = await engine.compute_stats(StatsFilter(development="Costa"))

        assert result.total_leads == 1
        assert result.leads_by_development == {"Riviera, Costa": 1}


class TestHelpers:
    @pytest.mark.parametrize("stage,won", [
        ("Ganado", True), ("Cerrado Ganado", True), ("Closed Won", True),
        ("ganado parcial", True), ("Perdido", False), (None, False),
    ])
    def test_is_won_stage(self, stage, won):
        assert is_won_stage(stage) is won

    def test_previous_month_range(self):
        start, end = previous_month_range(datetime(2024, 3, 10, 12, tzinfo=CDMX), CAL)
        assert start == datetime(2024, 2, 1, tzinfo=CDMX)
        assert end == datetime(2024, 2, 29, 23, 59, 59, 999000, tzinfo=CDMX)

    @pytest.mark.asyncio
    async def test_get_stats_for_previous_month_sets_range(self):
        engine = make_engine(remote([], []))
        with patch.object(analyzer, "get_engine", return_value=engine):
            await analyzer.get_stats_for_previous_month(
                StatsFilter(development="Riviera"), now=datetime(2024, 1, 5, tzinfo=CDMX),
            )

        passed_filter = engine.resolver.resolve.call_args.args[0]
        assert passed_filter.development == "Riviera"
        assert passed_filter.start_date == datetime(2023, 12, 1, tzinfo=CDMX)
        assert passed_filter.end_date.date().isoformat() == "2023-12-31"

    @pytest.mark.parametrize("value,expected", [
        (None, "Sin Fuente"),
        ("", "Sin Fuente"),
        ("  ", "Sin Fuente"),
        ([], "Sin Fuente"),
        ({"id": "1"}, "Sin Fuente"),
        (5, "5"),
        (2.5, "2.5"),
        (["Web", {"name": "Facebook"}, None], "Web, Facebook"),
        ({"name": "Portal", "id": "9"}, "Portal"),
        ("Web", "Web"),
    ])
    def test_category_label(self, value, expected):
        assert category_label(value, "Sin Fuente") == expected
