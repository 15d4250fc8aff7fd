"""Tests for the NC ladder, owner performance and category / area aggregation."""

import pytest

from analytics.category_area import (
    UNCATEGORIZED,
    BookingAreaAnalyzer,
    CategoryConversionAnalyzer,
    Gazetteer,
)
from analytics.config import DEFAULT_CATEGORY_FIELDS, DEFAULT_KNOWN_AREAS, NcSlaHours
from analytics.nc_ladder import NCLadderAnalyzer, elapsed_hours, nc_stage
from analytics.owner_stats import OwnerPerformanceAnalyzer


class TestNcStage:
    @pytest.mark.parametrize("raw,stage", [
        ("NC1", "NC1"),
        ("nc-2", "NC2"),
        ("NC 3", "NC3"),
        ("NC4", None),
        ("Interested", None),
        (None, None),
    ])
    def test_normalisation(self, raw, stage):
        assert nc_stage(raw) == stage


class TestNCLadder:
    EXAMPLE = [
        {"Phone": "9999999999", "Sub_Lead_Status": "NC1",
         "Created_Time": "2024-01-01T00:00:00Z", "Modified_Time": "2024-01-01T02:00:00Z"},
        {"Phone": "9999999999", "Sub_Lead_Status": "NC2",
         "Created_Time": "2024-01-01T00:00:00Z", "Modified_Time": "2024-01-01T06:00:00Z"},
    ]

    def test_ladder_example(self, window, make_leads):
        analyzer = NCLadderAnalyzer(window, 30, NcSlaHours(nc1_to_nc2=4))
        result = analyzer.analyze(make_leads(self.EXAMPLE))

        assert result["directFunnel"] == {"nc1": 1, "nc2": 1, "nc3": 0}
        assert result["funnel"] == {"nc1": 2, "nc2": 1, "nc3": 0}
        assert result["progression"]["nc1ToNc2Percent"] == 100.0
        assert result["progression"]["nc2ToNc3Percent"] == 0.0
        assert result["progression"]["avgHoursNc1ToNc2"] == 6.0
        assert result["sla"]["overdueNc1"] == 0
        assert result["sla"]["nc1ToNc2Hours"] == 4

    def test_overdue_when_elapsed_exceeds_sla(self, window, make_leads):
        analyzer = NCLadderAnalyzer(window, 30, NcSlaHours(nc1_to_nc2=1))
        result = analyzer.analyze(make_leads(self.EXAMPLE))
        assert result["sla"]["overdueNc1"] == 1

    def test_lookback_excludes_old_leads(self, window, make_leads):
        result = NCLadderAnalyzer(window, 7, NcSlaHours()).analyze(make_leads(self.EXAMPLE))
        assert result["directFunnel"] == {"nc1": 0, "nc2": 0, "nc3": 0}
        assert result["progression"]["nc1ToNc2Percent"] == 0.0

    def test_funnel_invariants(self, window, make_leads):
        stages = ["NC1", "NC1", "NC2", "NC3", "NC3", "nc-3", "Open", ""]
        leads = make_leads([
            {"Sub_Lead_Status": s, "Created_Time": "2024-01-09T10:00:00Z"} for s in stages
        ])
        result = NCLadderAnalyzer(window, 7, NcSlaHours()).analyze(leads)
        funnel, direct = result["funnel"], result["directFunnel"]
        assert funnel["nc1"] >= funnel["nc2"] >= funnel["nc3"]
        assert funnel["nc1"] == sum(direct.values()) == 6
        assert funnel["nc3"] == direct["nc3"] == 3

    def test_ideal_and_peak_hours(self, window, make_leads):
        analyzer = NCLadderAnalyzer(window, 30, NcSlaHours())
        leads = make_leads(self.EXAMPLE)
        ideal = analyzer.analyze(leads)["idealByStage"]
        # modified 02:00Z / 06:00Z land at 07:30 / 11:30 IST
        assert ideal["nc1"] == {"hour": "07:00", "count": 1, "score": 0.0}
        assert ideal["nc2"]["hour"] == "11:00"
        assert ideal["nc3"] == {"hour": "00:00", "count": 0, "score": 0.0}

        series = analyzer.time_series(leads)
        assert len(series["labels"]) == 24
        assert series["peakNC1Hour"] == "07:00"
        assert series["peakNC2Hour"] == "11:00"
        assert series["peakNC2Count"] == 1
        assert sum(series["nc3"]) == 0

    def test_elapsed_hours_floors_at_zero(self, make_leads):
        lead = make_leads([{
            "Created_Time": "2024-01-02T00:00:00Z", "Modified_Time": "2024-01-01T00:00:00Z",
        }])[0]
        assert elapsed_hours(lead) == 0.0
        assert elapsed_hours(make_leads([{}])[0]) is None


class TestOwnerPerformance:
    def test_owner_rows(self, window, make_leads, make_deals, make_tasks):
        leads = make_leads([
            {"Owner": {"name": "Ravi"}, "Created_Time": "2024-01-10T04:00:00Z", "Call_Count": 1},
            {"Owner": {"name": "Ravi"}, "Created_Time": "2024-01-08T04:00:00Z"},
            {"Owner": {"name": "Ravi"}, "Created_Time": "2023-12-01T04:00:00Z"},
            {"Owner": {"name": "pardeep kumar"}, "Created_Time": "2024-01-09T04:00:00Z"},
        ])
        deals = make_deals([
            {"Owner": {"name": "Ravi"}, "Created_Time": "2024-01-10T06:00:00Z",
             "Original_Created_Time_1": "2024-01-09T06:00:00Z"},
            {"Owner": {"name": "Ravi"}, "Created_Time": "2024-01-09T06:00:00Z",
             "Original_Created_Time_1": "2023-11-01T06:00:00Z"},
            {"Owner": {"name": "Meera"}, "Created_Time": "2024-01-10T06:00:00Z"},
        ])
        tasks = make_tasks([
            {"Owner": {"name": "Ravi"}, "Created_Time": "2024-01-09T06:00:00Z", "Status": "Completed"},
            {"Owner": {"name": "Ravi"}, "Created_Time": "2024-01-09T07:00:00Z", "Status": "Open"},
        ])
        analyzer = OwnerPerformanceAnalyzer(window, 7, ["Pardeep Kumar"])
        rows = analyzer.analyze(leads, deals, tasks)

        assert [r["owner"] for r in rows] == ["Ravi", "Meera"]
        ravi = rows[0]
        assert ravi["leads"] == 2
        assert ravi["calledLeads"] == 1
        assert ravi["retentionPercent"] == 50.0
        assert ravi["convertedLeads"] == 1
        assert ravi["leadToDealConversionPercent"] == 50.0
        assert ravi["taskCompletionPercent"] == 50.0
        assert ravi["todaysLeads"] == 1
        assert ravi["todaysDeals"] == 1
        assert rows[1]["leadToDealConversionPercent"] == 0.0

    def test_empty(self, window):
        assert OwnerPerformanceAnalyzer(window, 7).analyze([], [], []) == []


class TestGazetteer:
    @pytest.fixture
    def gazetteer(self):
        return Gazetteer(DEFAULT_KNOWN_AREAS)

    def test_longest_name_wins(self, gazetteer):
        assert gazetteer.match("Sarjapur Road, Bengaluru") == "Sarjapur Road"

    def test_case_insensitive(self, gazetteer):
        assert gazetteer.match("koramangala 5th block") == "Koramangala"

    def test_equal_length_names_keep_list_order(self):
        address = "Bravo Park near Alpha Park"
        assert Gazetteer(["Alpha Park", "Bravo Park"]).match(address) == "Alpha Park"
        assert Gazetteer(["Bravo Park", "Alpha Park"]).match(address) == "Bravo Park"

    def test_equal_length_default_areas(self, gazetteer):
        assert gazetteer.match("12 Kudlu Gate, Hosur Road") == "Hosur Road"

    def test_duplicate_names_collapse(self):
        gazetteer = Gazetteer(["HSR Layout", " HSR Layout ", "", "BTM"])
        assert gazetteer.match("hsr layout") == "HSR Layout"
        assert gazetteer.match("BTM 2nd stage") == "BTM"

    def test_whole_words_only(self, gazetteer):
        assert gazetteer.match("Begurx Main") is None
        assert gazetteer.match("") is None
        assert gazetteer.match(None) is None


class TestBookingAreas:
    def test_ranking(self, make_deals):
        deals = make_deals([
            {"Street": "12, 5th Cross, HSR Layout"},
            {"Street": "hsr layout sector 2"},
            {"Street": "Sarjapur Road, Bengaluru"},
            {"Street": "Unknown place"},
            {},
        ])
        result = BookingAreaAnalyzer(Gazetteer(DEFAULT_KNOWN_AREAS), top=5).analyze(deals)
        assert result == [
            {"rank": 1, "area": "HSR Layout", "bookings": 2},
            {"rank": 2, "area": "Sarjapur Road", "bookings": 1},
        ]


class TestCategoryConversions:
    def test_conversion_by_first_populated_field(self, window, make_leads, make_deals):
        leads = make_leads([
            {"Lead_Source": "Website", "Phone": "9000000001", "Created_Time": "2024-01-09T04:00:00Z"},
            {"Lead_Source": "Website", "Phone": "9000000002", "Created_Time": "2024-01-09T04:00:00Z"},
            {"Lead_Source": "Referral", "Lead_Status": "Converted", "Created_Time": "2024-01-09T04:00:00Z"},
            {"First_Name": "Kiran", "Last_Name": "Shah", "Created_Time": "2024-01-09T04:00:00Z"},
            {"Lead_Source": "Old", "Created_Time": "2023-10-01T04:00:00Z"},
        ])
        deals = make_deals([
            {"Phone": "+91 90000 00001", "Created_Time": "2024-01-10T04:00:00Z"},
            {"Contact_Name": "Kiran Shah", "Created_Time": "2024-01-10T04:00:00Z"},
        ])
        analyzer = CategoryConversionAnalyzer(window, 7, DEFAULT_CATEGORY_FIELDS, ["converted", "won", "deal"])
        assert analyzer.choose_field(leads) == "Lead_Source"

        result = analyzer.analyze(leads, deals)
        assert result == [
            {"category": "Website", "leads": 2, "deals": 1, "conversionPercent": 50.0},
            {"category": "Referral", "leads": 1, "deals": 1, "conversionPercent": 100.0},
            {"category": UNCATEGORIZED, "leads": 1, "deals": 1, "conversionPercent": 100.0},
        ]

    def test_no_populated_field(self, window, make_leads):
        leads = make_leads([{"Created_Time": "2024-01-09T04:00:00Z"}])
        analyzer = CategoryConversionAnalyzer(window, 7, ["Lead_Source"], ["won"])
        assert analyzer.analyze(leads, []) == []
