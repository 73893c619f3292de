"""Inventory scope classification tests."""

from __future__ import annotations

from datetime import timedelta

from factories import NOW, hilux_row

from restock_mcp.matching.models import MatchConfig
from restock_mcp.matching.scope import (
    classify_scope,
    is_catalogue_source,
    is_execution_scope,
    is_lenient_source,
    visibility_exclusion_reason,
)

TOMORROW = (NOW + timedelta(days=1)).isoformat()
YESTERDAY = (NOW - timedelta(days=1)).isoformat()


class TestExecutionScope:
    def test_listed_visible_past_auction(self, now):
        assert is_execution_scope(hilux_row(auction_datetime=YESTERDAY), now)

    def test_passed_in_counts(self, now):
        assert is_execution_scope(hilux_row(status="passed_in"), now)

    def test_numeric_status_code(self, now):
        assert is_execution_scope(hilux_row(status="2"), now)

    def test_missing_date_is_eligible(self, now):
        assert is_execution_scope(hilux_row(auction_datetime=None), now)

    def test_today_is_eligible(self, now):
        later_today = NOW.replace(hour=23).isoformat()
        assert is_execution_scope(hilux_row(auction_datetime=later_today), now)

    def test_future_auction_not_eligible(self, now):
        assert not is_execution_scope(hilux_row(auction_datetime=TOMORROW), now)

    def test_unparseable_date_not_eligible(self, now):
        assert not is_execution_scope(hilux_row(auction_datetime="TBA"), now)

    def test_hidden_row_not_eligible(self, now):
        assert not is_execution_scope(hilux_row(visible_to_dealers="N"), now)

    def test_catalogue_status_not_eligible(self, now):
        assert not is_execution_scope(hilux_row(status="catalogue"), now)


class TestVisibilityScope:
    def test_catalogue_source_without_visibility_flag(self, now):
        row = hilux_row(
            status="catalogue",
            visible_to_dealers="N",
            source_name="Pickles",
            auction_house="Pickles",
            auction_datetime=TOMORROW,
        )
        assert visibility_exclusion_reason(row, now) is None

    def test_non_catalogue_hidden_row_excluded(self, now):
        row = hilux_row(status="catalogue", visible_to_dealers="N", auction_datetime=TOMORROW)
        assert visibility_exclusion_reason(row, now) == (
            "not a catalogue source and not visible to dealers"
        )

    def test_past_auction_excluded(self, now):
        row = hilux_row(status="upcoming", auction_datetime=YESTERDAY)
        reason = visibility_exclusion_reason(row, now)
        assert reason is not None
        assert "in the past" in reason

    def test_passed_in_not_a_visibility_status(self, now):
        row = hilux_row(status="passed_in", auction_datetime=TOMORROW)
        assert "not in" in visibility_exclusion_reason(row, now)

    def test_source_type_catalogue(self):
        row = hilux_row(source_type="catalogue")
        assert is_catalogue_source(row, MatchConfig())

    def test_lenient_marker_checks_auction_house(self):
        row = hilux_row(source_name="Weekly sale", auction_house="Pickles Brisbane")
        assert is_lenient_source(row, MatchConfig())
        assert not is_lenient_source(hilux_row(), MatchConfig())


class TestClassifyScope:
    def _rows(self):
        return [
            hilux_row(row_id="exec", auction_datetime=YESTERDAY),
            hilux_row(row_id="future", auction_datetime=TOMORROW),
            hilux_row(row_id="tba", status="upcoming", auction_datetime="TBA"),
            hilux_row(row_id="sold", status="sold"),
            hilux_row(row_id="excl", excluded_reason="damaged"),
            hilux_row(row_id="stale", status="upcoming", auction_datetime=YESTERDAY),
            hilux_row(row_id="undated", auction_datetime=None),
        ]

    def test_partition(self, now):
        partition = classify_scope(self._rows(), now=now)
        assert [r.row_id for r in partition.execution] == ["exec", "undated"]
        assert [r.row_id for r in partition.visibility] == ["future", "tba"]
        assert [r.row_id for r in partition.unscoped] == ["sold", "excl", "stale"]
        assert partition.date_unknown_ids == {"tba"}

    def test_pools_are_disjoint(self, now):
        partition = classify_scope(self._rows(), now=now)
        ids = [
            r.row_id
            for pool in (partition.execution, partition.visibility, partition.unscoped)
            for r in pool
        ]
        assert len(ids) == len(set(ids)) == 7

    def test_listed_with_unparseable_date_goes_to_visibility(self, now):
        partition = classify_scope([hilux_row(auction_datetime="soon")], now=now)
        assert partition.execution == []
        assert [r.row_id for r in partition.visibility] == ["LOT-1"]
        assert partition.date_unknown_ids == {"LOT-1"}

    def test_to_dict_with_reasons(self, now):
        payload = classify_scope(self._rows(), now=now).to_dict(include_reasons=True, now=now)
        assert payload["counts"] == {
            "execution": 2,
            "visibility": 2,
            "unscoped": 3,
            "date_unknown": 1,
        }
        assert payload["unscoped_reasons"]["sold"] == "status 'sold' is terminal"
        assert payload["unscoped_reasons"]["excl"] == "excluded: damaged"

    def test_custom_catalogue_markers(self, now):
        row = hilux_row(
            status="catalogue", visible_to_dealers="N", auction_datetime=TOMORROW
        )
        config = MatchConfig(catalogue_sources=("manheim",))
        partition = classify_scope([row], now=now, config=config)
        assert [r.row_id for r in partition.visibility] == ["LOT-1"]
