"""Scope, match evaluation and pressure tool implementations."""

from __future__ import annotations

from typing import Any

from cip_protocol import CIP

from restock_mcp.matching.engine import evaluate_matches, filter_matches, group_by_lane
from restock_mcp.matching.models import (
    Action,
    Fingerprint,
    InventoryRow,
    Lane,
    MatchConfig,
    Tier,
)
from restock_mcp.matching.pressure import (
    decide_row_action,
    default_lot_action,
    lot_flag_reasons,
    score_lot_confidence,
)
from restock_mcp.matching.scope import classify_scope
from restock_mcp.tools.orchestration import run_tool_with_orchestration, utc_now

MAX_INVENTORY_ROWS = 5000
MAX_FINGERPRINTS = 500
_LANE_NAMES = {lane.value.lower(): lane for lane in Lane}


def _parse_rows(inventory: list[dict[str, Any]]) -> list[InventoryRow] | str:
    if not inventory:
        return "Provide at least one inventory row."
    if len(inventory) > MAX_INVENTORY_ROWS:
        return f"At most {MAX_INVENTORY_ROWS} inventory rows can be evaluated per call."
    if not all(isinstance(r, dict) for r in inventory):
        return "Each inventory row must be an object."
    return [InventoryRow.from_dict(r) for r in inventory]


async def classify_inventory_scope_impl(
    cip: CIP,
    *,
    inventory: list[dict[str, Any]],
    config: MatchConfig | None = None,
    scaffold_id: str | None = None,
    policy: str | None = None,
    context_notes: str | None = None,
    raw: bool = False,
) -> str:
    """Partition inventory rows into execution, visibility and unscoped pools."""
    rows = _parse_rows(inventory)
    if isinstance(rows, str):
        return rows

    cfg = config or MatchConfig.from_env()
    now = utc_now()
    partition = classify_scope(rows, now=now, config=cfg)
    data_context = partition.to_dict(include_reasons=True, now=now, config=cfg)
    counts = data_context["counts"]
    return await run_tool_with_orchestration(
        cip,
        user_input=(
            f"Review inventory scope: {counts['execution']} execution, "
            f"{counts['visibility']} visibility, {counts['unscoped']} unscoped"
        ),
        tool_name="classify_inventory_scope",
        data_context=data_context,
        scaffold_id=scaffold_id,
        policy=policy,
        context_notes=context_notes,
        raw=raw,
    )


async def evaluate_fingerprint_matches_impl(
    cip: CIP,
    *,
    fingerprints: list[dict[str, Any]],
    inventory: list[dict[str, Any]],
    lane: str | None = None,
    source_name: str | None = None,
    action: str | None = None,
    min_confidence: int = 0,
    config: MatchConfig | None = None,
    scaffold_id: str | None = None,
    policy: str | None = None,
    context_notes: str | None = None,
    raw: bool = False,
) -> str:
    """Match fingerprints against inventory and return ordered, lane-grouped results."""
    if not fingerprints:
        return "Provide at least one fingerprint to match."
    if len(fingerprints) > MAX_FINGERPRINTS:
        return f"At most {MAX_FINGERPRINTS} fingerprints can be evaluated per call."
    if not all(isinstance(f, dict) for f in fingerprints):
        return "Each fingerprint must be an object."
    rows = _parse_rows(inventory)
    if isinstance(rows, str):
        return rows

    lane_filter: Lane | None = None
    if lane and lane.lower() != "all":
        lane_filter = _LANE_NAMES.get(lane.strip().lower())
        if lane_filter is None:
            return "lane must be one of: Precision, Advisory, Probable, all."
    action_filter = Action.parse(action)
    if action and action.strip().lower() != "all" and action_filter is None:
        return "action must be one of: watch, buy, all."
    if min_confidence < 0:
        return "min_confidence must be zero or greater."

    cfg = config or MatchConfig.from_env()
    fps = [Fingerprint.from_dict(f, ttl_days=cfg.fingerprint_ttl_days) for f in fingerprints]
    report = evaluate_matches(fps, rows, now=utc_now(), config=cfg)
    filtered = filter_matches(
        report.matches,
        lane=lane_filter,
        source_name=source_name or None,
        action=action_filter,
        min_confidence=min_confidence,
    )

    lanes = group_by_lane(filtered)
    data_context: dict[str, Any] = {
        "matches": [m.to_dict() for m in filtered],
        "lanes": {name.value: [m.to_dict() for m in members] for name, members in lanes.items()},
        "lane_counts": {name.value: len(members) for name, members in lanes.items()},
        "scope": report.scope.to_dict(),
        "diagnostics": report.diagnostics,
        "filters": {
            "lane": lane_filter.value if lane_filter else "all",
            "source_name": source_name or "all",
            "action": action_filter.value if action_filter else "all",
            "min_confidence": min_confidence,
        },
    }
    diag = report.diagnostics
    return await run_tool_with_orchestration(
        cip,
        user_input=(
            f"Review {len(filtered)} fingerprint matches "
            f"({diag['tier1_matches']} tier-1, {diag['tier2_matches']} tier-2, "
            f"{diag['buy_eligible']} buy-eligible)"
        ),
        tool_name="evaluate_fingerprint_matches",
        data_context=data_context,
        scaffold_id=scaffold_id,
        policy=policy,
        context_notes=context_notes,
        raw=raw,
    )


async def assess_buy_pressure_impl(
    cip: CIP,
    *,
    lot: dict[str, Any],
    tier: int = 1,
    config: MatchConfig | None = None,
    scaffold_id: str | None = None,
    policy: str | None = None,
    context_notes: str | None = None,
    raw: bool = False,
) -> str:
    """Pressure signals, lot score, flag reasons and the gated action for one lot."""
    if not isinstance(lot, dict) or not lot:
        return "Provide the lot as an object of inventory fields."
    try:
        tier_value = Tier(tier)
    except ValueError:
        return "tier must be 1 or 2."

    cfg = config or MatchConfig.from_env()
    now = utc_now()
    row = InventoryRow.from_dict(lot)
    decision = decide_row_action(row, tier=tier_value, now=now, config=cfg)
    lot_score = score_lot_confidence(row)
    data_context: dict[str, Any] = {
        "row_id": row.row_id,
        "tier": tier_value.value,
        "confidence_score": row.confidence_score,
        "pressure_signals": decision.signals.to_dict(),
        "gated_action": decision.action.value,
        "gate_reason": decision.reason,
        "lot_confidence_score": lot_score,
        "lot_default_action": default_lot_action(lot_score).value,
        "flag_reasons": lot_flag_reasons(row, now),
    }
    return await run_tool_with_orchestration(
        cip,
        user_input=(
            f"Assess buy pressure for lot {row.row_id or 'unknown'}: "
            f"{decision.action.value} ({decision.reason})"
        ),
        tool_name="assess_buy_pressure",
        data_context=data_context,
        scaffold_id=scaffold_id,
        policy=policy,
        context_notes=context_notes,
        raw=raw,
    )
