"""End-to-end match evaluation tests."""

from __future__ import annotations

from datetime import timedelta

import pytest
from factories import NOW, hilux_fingerprint, hilux_row

from restock_mcp.matching.engine import evaluate_matches, filter_matches, sort_matches
from restock_mcp.matching.models import Action, Lane, MatchType, Tier

TOMORROW = (NOW + timedelta(days=1)).isoformat()


def _inventory():
    return [
        hilux_row(row_id="LOT-1", pass_count=2),
        hilux_row(row_id="LOT-2", km=None),
        hilux_row(row_id="LOT-3", auction_datetime=TOMORROW),
        hilux_row(row_id="LOT-4", status="sold"),
        hilux_row(row_id="LOT-5", make="Ford", model="Ranger", variant_family=None),
    ]


@pytest.fixture()
def report(now):
    fingerprints = [hilux_fingerprint(), hilux_fingerprint(fingerprint_id="FP-2", is_active="N")]
    return evaluate_matches(fingerprints, _inventory(), now=now)


class TestEvaluateMatches:
    def test_matches_in_presentation_order(self, report):
        assert [m.row.row_id for m in report.matches] == ["LOT-1", "LOT-2", "LOT-3"]

    def test_tiers_and_actions(self, report):
        lot1, lot2, lot3 = report.matches
        assert (lot1.tier, lot1.action) == (Tier.EXACT, Action.BUY)
        assert lot1.signals == ["passed_in_repeatedly"]
        assert (lot2.tier, lot2.match_type) == (Tier.PROBABLE, MatchType.VARIANT_FAMILY)
        assert lot2.action_reason == "tier2_capped"
        assert lot3.visibility_only is True
        assert lot3.action is Action.WATCH

    def test_lanes_include_empty_advisory(self, report):
        assert [m.row.row_id for m in report.lanes[Lane.PRECISION]] == ["LOT-1"]
        assert report.lanes[Lane.ADVISORY] == []
        assert [m.row.row_id for m in report.lanes[Lane.PROBABLE]] == ["LOT-2", "LOT-3"]

    def test_diagnostics(self, report):
        assert report.diagnostics == {
            "active_fingerprints": 1,
            "full_fingerprints": 1,
            "spec_only_fingerprints": 0,
            "fingerprints_with_family": 1,
            "rows_total": 5,
            "rows_with_family": 4,
            "execution_rows": 3,
            "visibility_rows": 1,
            "unscoped_rows": 1,
            "date_unknown_rows": 0,
            "catalogue_rows_missing_km": 0,
            "tier1_matches": 1,
            "tier2_matches": 2,
            "visibility_only_matches": 1,
            "buy_eligible": 1,
        }

    def test_to_dict_shape(self, report):
        payload = report.to_dict()
        assert set(payload["lanes"]) == {"Precision", "Advisory", "Probable"}
        assert payload["matches"][0]["tier"] == 1
        assert payload["matches"][0]["action"] == "buy"
        assert payload["scope"]["counts"]["execution"] == 3

    def test_no_eligible_fingerprints(self, now):
        report = evaluate_matches(
            [hilux_fingerprint(do_not_buy="Y")], _inventory(), now=now
        )
        assert report.matches == []
        assert report.diagnostics["active_fingerprints"] == 0


class TestSorting:
    def test_confidence_then_undated_first(self, now):
        rows = [
            hilux_row(row_id="dated", km=None),
            hilux_row(row_id="undated", km=None, auction_datetime=None),
            hilux_row(row_id="strong", km=None, confidence_score=7),
        ]
        report = evaluate_matches([hilux_fingerprint()], rows, now=now)
        assert [m.row.row_id for m in report.matches] == ["strong", "undated", "dated"]

    def test_sort_ignores_input_order(self, report):
        again = sort_matches(reversed(report.matches))
        assert [m.row.row_id for m in again] == ["LOT-1", "LOT-2", "LOT-3"]


class TestFilterMatches:
    def test_lane_filter(self, report):
        assert [m.row.row_id for m in filter_matches(report.matches, lane="Precision")] == [
            "LOT-1"
        ]

    def test_action_filter(self, report):
        assert [m.row.row_id for m in filter_matches(report.matches, action="BUY")] == [
            "LOT-1"
        ]
        watched = filter_matches(report.matches, action=Action.WATCH)
        assert [m.row.row_id for m in watched] == ["LOT-2", "LOT-3"]

    def test_all_disables_filters(self, report):
        assert filter_matches(report.matches, lane="all", action="all") == report.matches

    def test_source_and_confidence(self, report):
        assert filter_matches(report.matches, source_name="Pickles") == []
        assert len(filter_matches(report.matches, source_name="Manheim")) == 3
        assert filter_matches(report.matches, min_confidence=5) == []

    def test_unknown_action_rejected(self, report):
        with pytest.raises(ValueError):
            filter_matches(report.matches, action="sell")
