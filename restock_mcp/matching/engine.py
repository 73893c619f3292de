"""Full match evaluation pass: scope, tier, gate, sort, group."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from restock_mcp.matching.models import (
    Action,
    Fingerprint,
    InventoryRow,
    Lane,
    Match,
    MatchConfig,
    Scope,
    Tier,
)
from restock_mcp.matching.pressure import decide_action
from restock_mcp.matching.scope import ScopePartition, classify_scope, is_catalogue_source
from restock_mcp.matching.tiers import DEFAULT_RULES, TierRule, match_pair

logger = logging.getLogger(__name__)


@dataclass
class MatchReport:
    matches: list[Match]
    lanes: dict[Lane, list[Match]]
    scope: ScopePartition
    diagnostics: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "lanes": {
                lane.value: [m.to_dict() for m in members]
                for lane, members in self.lanes.items()
            },
            "scope": self.scope.to_dict(),
            "diagnostics": dict(self.diagnostics),
        }


def _sort_key(match: Match) -> tuple[int, int, int, int, float]:
    auction_at = match.row.auction_at
    # Undated rows are actionable now, so they lead.
    if auction_at is None:
        date_key = (0, 0.0)
    else:
        date_key = (1, auction_at.timestamp())
    return (match.tier.value, match.lane.priority, -match.row.confidence_score, *date_key)


def sort_matches(matches: Iterable[Match]) -> list[Match]:
    """Presentation order: tier, lane priority, confidence desc, auction date asc."""
    return sorted(matches, key=_sort_key)


def group_by_lane(matches: Iterable[Match]) -> dict[Lane, list[Match]]:
    lanes: dict[Lane, list[Match]] = {lane: [] for lane in Lane}
    for match in matches:
        lanes[match.lane].append(match)
    return lanes


def filter_matches(
    matches: Iterable[Match],
    *,
    lane: Lane | str | None = None,
    source_name: str | None = None,
    action: Action | str | None = None,
    min_confidence: int = 0,
) -> list[Match]:
    """Filter without reordering; ``None``/``"all"`` disables a filter."""
    lane_value = Lane(lane) if lane not in (None, "all") else None
    action_value = Action.parse(action.value if isinstance(action, Action) else action)
    if action_value is None and action not in (None, "all"):
        raise ValueError(f"Unknown action filter: {action!r}")
    want_source = source_name if source_name not in (None, "all") else None

    result: list[Match] = []
    for m in matches:
        if lane_value is not None and m.lane is not lane_value:
            continue
        if want_source is not None and m.row.source_label != want_source:
            continue
        if action_value is not None and m.action is not action_value:
            continue
        if min_confidence > 0 and m.row.confidence_score < min_confidence:
            continue
        result.append(m)
    return result


def _diagnostics(
    fingerprints: Sequence[Fingerprint],
    rows: Sequence[InventoryRow],
    partition: ScopePartition,
    matches: Sequence[Match],
    config: MatchConfig,
) -> dict[str, int]:
    return {
        "active_fingerprints": len(fingerprints),
        "full_fingerprints": sum(1 for fp in fingerprints if not fp.is_spec_only),
        "spec_only_fingerprints": sum(1 for fp in fingerprints if fp.is_spec_only),
        "fingerprints_with_family": sum(1 for fp in fingerprints if fp.variant_family),
        "rows_total": len(rows),
        "rows_with_family": sum(1 for r in rows if r.variant_family),
        "execution_rows": len(partition.execution),
        "visibility_rows": len(partition.visibility),
        "unscoped_rows": len(partition.unscoped),
        "date_unknown_rows": len(partition.date_unknown_ids),
        "catalogue_rows_missing_km": sum(
            1
            for r in rows
            if is_catalogue_source(r, config)
            and not r.has_confirmed_km(config.max_plausible_km)
        ),
        "tier1_matches": sum(1 for m in matches if m.tier is Tier.EXACT),
        "tier2_matches": sum(1 for m in matches if m.tier is Tier.PROBABLE),
        "visibility_only_matches": sum(1 for m in matches if m.visibility_only),
        "buy_eligible": sum(1 for m in matches if m.action is Action.BUY),
    }


def evaluate_matches(
    fingerprints: Iterable[Fingerprint],
    rows: Iterable[InventoryRow],
    *,
    now: datetime | None = None,
    config: MatchConfig | None = None,
    rules: Sequence[TierRule] = DEFAULT_RULES,
) -> MatchReport:
    """Match every eligible fingerprint against every scoped row."""
    now = now or datetime.now(timezone.utc)
    cfg = config or MatchConfig()
    all_rows = list(rows)
    active = [fp for fp in fingerprints if fp.is_eligible(now)]
    partition = classify_scope(all_rows, now=now, config=cfg)

    matches: list[Match] = []
    for scope, pool in (
        (Scope.EXECUTION, partition.execution),
        (Scope.VISIBILITY, partition.visibility),
    ):
        for fp in active:
            for row in pool:
                match = match_pair(fp, row, scope=scope, now=now, config=cfg, rules=rules)
                if match is None:
                    continue
                decision = decide_action(match, now=now, config=cfg)
                match.action = decision.action
                match.action_reason = decision.reason
                match.signals = decision.signals.names
                matches.append(match)

    ordered = sort_matches(matches)
    diagnostics = _diagnostics(active, all_rows, partition, ordered, cfg)
    logger.info(
        "Evaluated %d fingerprints x %d rows: %d tier-1, %d tier-2, %d buy",
        len(active),
        len(partition.execution) + len(partition.visibility),
        diagnostics["tier1_matches"],
        diagnostics["tier2_matches"],
        diagnostics["buy_eligible"],
    )
    return MatchReport(
        matches=ordered,
        lanes=group_by_lane(ordered),
        scope=partition,
        diagnostics=diagnostics,
    )
