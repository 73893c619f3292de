"""Pressure-signal gate for Tier-1 watch to buy promotion, plus lot scoring."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from restock_mcp.constants import DAYS_ON_MARKET_THRESHOLD, LOT_ACTION_BUY_SCORE
from restock_mcp.matching.models import Action, InventoryRow, Match, MatchConfig, Tier

MARGIN_OK_THRESHOLD = 1000
MARGIN_SCORE_THRESHOLD = 2000


@dataclass(frozen=True)
class PressureSignals:
    passed_in_repeatedly: bool = False
    aged: bool = False
    price_dropped: bool = False
    days_on_market: int | None = None
    price_drop_pct: float | None = None

    @property
    def any(self) -> bool:
        return self.passed_in_repeatedly or self.aged or self.price_dropped

    @property
    def names(self) -> list[str]:
        flags = (
            ("passed_in_repeatedly", self.passed_in_repeatedly),
            ("aged", self.aged),
            ("price_dropped", self.price_dropped),
        )
        return [name for name, on in flags if on]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed_in_repeatedly": self.passed_in_repeatedly,
            "aged": self.aged,
            "price_dropped": self.price_dropped,
            "days_on_market": self.days_on_market,
            "price_drop_pct": (
                round(self.price_drop_pct, 2) if self.price_drop_pct is not None else None
            ),
        }


@dataclass(frozen=True)
class ActionDecision:
    action: Action
    signals: PressureSignals
    reason: str


def days_on_market(row: InventoryRow, now: datetime) -> int | None:
    if row.first_seen_at is None:
        return None
    return (now - row.first_seen_at).days


def price_drop_pct(row: InventoryRow) -> float | None:
    if not row.price_original or row.price_current is None or row.price_original <= 0:
        return None
    return (row.price_original - row.price_current) / row.price_original * 100


def detect_pressure_signals(
    row: InventoryRow, *, now: datetime, config: MatchConfig | None = None
) -> PressureSignals:
    cfg = config or MatchConfig()
    days = days_on_market(row, now)
    drop = price_drop_pct(row)
    return PressureSignals(
        passed_in_repeatedly=row.pass_count + row.relist_count >= cfg.pass_count_threshold,
        aged=days is not None and days >= cfg.days_on_market_threshold,
        price_dropped=drop is not None and drop >= cfg.price_drop_threshold_pct,
        days_on_market=days,
        price_drop_pct=drop,
    )


def decide_row_action(
    row: InventoryRow,
    *,
    tier: Tier,
    now: datetime,
    config: MatchConfig | None = None,
    visibility_only: bool = False,
) -> ActionDecision:
    """Tier-2 is capped at watch; Tier-1 needs confidence and a pressure signal to buy."""
    cfg = config or MatchConfig()
    signals = detect_pressure_signals(row, now=now, config=cfg)
    if tier is not Tier.EXACT or visibility_only:
        return ActionDecision(Action.WATCH, signals, "tier2_capped")
    if row.confidence_score < cfg.buy_confidence_threshold:
        return ActionDecision(Action.WATCH, signals, "low_confidence")
    if signals.any:
        return ActionDecision(Action.BUY, signals, "pressure_confirmed")
    return ActionDecision(Action.WATCH, signals, "awaiting_pressure")


def decide_action(
    match: Match, *, now: datetime, config: MatchConfig | None = None
) -> ActionDecision:
    return decide_row_action(
        match.row,
        tier=match.tier,
        now=now,
        config=config,
        visibility_only=match.visibility_only,
    )


# ── Lot scoring ─────────────────────────────────────────────────────


def score_lot_confidence(row: InventoryRow) -> int:
    score = 0
    if row.pass_count >= 2:
        score += 1
    if row.pass_count >= 3:
        score += 1
    if row.description_score is not None and row.description_score <= 1:
        score += 1
    if row.estimated_margin is not None and row.estimated_margin >= MARGIN_SCORE_THRESHOLD:
        score += 1
    return score


def default_lot_action(score: int) -> Action:
    return Action.BUY if score >= LOT_ACTION_BUY_SCORE else Action.WATCH


def lot_flag_reasons(row: InventoryRow, now: datetime) -> list[str]:
    """Human-readable flags shown beside a lot."""
    reasons: list[str] = []
    if row.source_type in (None, "auction"):
        if row.pass_count >= 3:
            reasons.append("PASSED IN x3+")
        elif row.pass_count == 2:
            reasons.append("PASSED IN x2")
    drop = price_drop_pct(row)
    if drop is not None and drop > 0:
        reasons.append("PRICE DROPPING")
    if row.relist_count >= 1:
        reasons.append("RELISTED")
    days = days_on_market(row, now)
    if days is not None and days >= DAYS_ON_MARKET_THRESHOLD:
        reasons.append("FATIGUE LISTING")
    if row.description_score is not None and row.description_score <= 1:
        reasons.append("UNDER-SPECIFIED")
    if row.estimated_margin is not None and row.estimated_margin >= MARGIN_OK_THRESHOLD:
        reasons.append("MARGIN OK")
    return reasons
