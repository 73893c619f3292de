"""Partition inventory into disjoint execution and visibility scopes.

Execution rows may drive a buy; visibility rows are informational and only
ever produce Tier-2 matches. The partition is computed once per batch.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from restock_mcp.constants import (
    EXECUTION_STATUSES,
    TERMINAL_STATUSES,
    VISIBILITY_STATUSES,
)
from restock_mcp.matching.models import InventoryRow, MatchConfig


@dataclass
class ScopePartition:
    execution: list[InventoryRow] = field(default_factory=list)
    visibility: list[InventoryRow] = field(default_factory=list)
    unscoped: list[InventoryRow] = field(default_factory=list)
    date_unknown_ids: set[str] = field(default_factory=set)

    def to_dict(self, *, include_reasons: bool = False, now: datetime | None = None,
                config: MatchConfig | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "execution": [r.row_id for r in self.execution],
            "visibility": [r.row_id for r in self.visibility],
            "unscoped": [r.row_id for r in self.unscoped],
            "date_unknown": sorted(self.date_unknown_ids),
            "counts": {
                "execution": len(self.execution),
                "visibility": len(self.visibility),
                "unscoped": len(self.unscoped),
                "date_unknown": len(self.date_unknown_ids),
            },
        }
        if include_reasons and now is not None:
            cfg = config or MatchConfig()
            payload["unscoped_reasons"] = {
                r.row_id: visibility_exclusion_reason(r, now, config=cfg)
                for r in self.unscoped
            }
        return payload


def is_catalogue_source(row: InventoryRow, config: MatchConfig) -> bool:
    if (row.source_type or "").strip().lower() == "catalogue":
        return True
    return _has_marker(row, config.catalogue_sources)


def is_lenient_source(row: InventoryRow, config: MatchConfig) -> bool:
    """Sources known to omit km/family data and to carry unreliable years."""
    return _has_marker(row, config.lenient_sources)


def _has_marker(row: InventoryRow, markers: Iterable[str]) -> bool:
    source = (row.source_name or "").lower()
    house = (row.auction_house or "").lower()
    return any(m and (m in source or m in house) for m in markers)


def _today(now: datetime) -> date:
    return now.date()


def is_execution_scope(row: InventoryRow, now: datetime) -> bool:
    if row.status not in EXECUTION_STATUSES or not row.visible_to_dealers:
        return False
    if row.auction_date_raw is None:
        return True
    # Present but unparseable dates are never execution-eligible.
    if row.auction_at is None:
        return False
    return row.auction_at.date() <= _today(now)


def visibility_exclusion_reason(
    row: InventoryRow, now: datetime, *, config: MatchConfig | None = None
) -> str | None:
    """Why *row* is outside visibility scope, or ``None`` when it qualifies."""
    cfg = config or MatchConfig()
    if row.status in TERMINAL_STATUSES:
        return f"status '{row.status}' is terminal"
    if row.excluded_reason:
        return f"excluded: {row.excluded_reason}"
    if not is_catalogue_source(row, cfg) and not row.visible_to_dealers:
        return "not a catalogue source and not visible to dealers"
    if row.status not in VISIBILITY_STATUSES:
        return f"status '{row.status}' not in [catalogue, upcoming, listed]"
    if row.auction_at is not None and row.auction_at.date() < _today(now):
        return f"auction date {row.auction_at.date().isoformat()} is in the past"
    return None


def classify_scope(
    rows: Iterable[InventoryRow],
    *,
    now: datetime,
    config: MatchConfig | None = None,
) -> ScopePartition:
    """Split *rows* into execution, visibility and unscoped pools."""
    cfg = config or MatchConfig()
    partition = ScopePartition()
    for row in rows:
        if row.status in TERMINAL_STATUSES or row.excluded_reason:
            partition.unscoped.append(row)
            continue
        if is_execution_scope(row, now):
            partition.execution.append(row)
        elif visibility_exclusion_reason(row, now, config=cfg) is None:
            partition.visibility.append(row)
            if row.auction_date_unknown:
                partition.date_unknown_ids.add(row.row_id)
        else:
            partition.unscoped.append(row)
    return partition
