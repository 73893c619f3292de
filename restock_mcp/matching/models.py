"""Typed records for fingerprints, inventory rows and matches."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from restock_mcp.constants import (
    BUY_CONFIDENCE_THRESHOLD,
    DAYS_ON_MARKET_THRESHOLD,
    DEFAULT_CATALOGUE_SOURCES,
    DEFAULT_FINGERPRINT_TTL_DAYS,
    DEFAULT_LENIENT_SOURCES,
    DEFAULT_YEAR_TOLERANCE,
    LENIENT_YEAR_TOLERANCE,
    MAX_PLAUSIBLE_KM,
    PASS_COUNT_THRESHOLD,
    PRICE_DROP_THRESHOLD_PCT,
)
from restock_mcp.normalization import (
    clean_str,
    normalize_status,
    parse_datetime,
    parse_flag,
    parse_int,
    parse_price,
)

# ── Enumerations ────────────────────────────────────────────────────


class MatchType(str, enum.Enum):
    KM_BOUNDED = "km_bounded"
    SPEC_ONLY = "spec_only"
    VARIANT_FAMILY = "variant_family"


class Tier(int, enum.Enum):
    EXACT = 1
    PROBABLE = 2


class Lane(str, enum.Enum):
    PRECISION = "Precision"
    ADVISORY = "Advisory"
    PROBABLE = "Probable"

    @property
    def priority(self) -> int:
        return _LANE_PRIORITY[self]


_LANE_PRIORITY = {Lane.PRECISION: 0, Lane.ADVISORY: 1, Lane.PROBABLE: 2}


class MatchConfidence(str, enum.Enum):
    EXACT = "exact"
    PROBABLE = "probable"


class Scope(str, enum.Enum):
    EXECUTION = "execution"
    VISIBILITY = "visibility"


class Action(str, enum.Enum):
    WATCH = "watch"
    BUY = "buy"

    @classmethod
    def parse(cls, value: Any) -> Action | None:
        text = clean_str(value)
        if not text:
            return None
        try:
            return cls(text.lower())
        except ValueError:
            return None


# ── Configuration ───────────────────────────────────────────────────


def _env_int(name: str, default: int) -> int:
    value = parse_int(os.environ.get(name))
    return default if value is None else value


def _env_float(name: str, default: float) -> float:
    value = parse_price(os.environ.get(name))
    return default if value is None else value


def _env_markers(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return tuple(m.strip().lower() for m in raw.split(",") if m.strip())


@dataclass(frozen=True)
class MatchConfig:
    """Thresholds for scoping, tiering and the pressure gate."""
    year_tolerance: int = DEFAULT_YEAR_TOLERANCE
    lenient_year_tolerance: int = LENIENT_YEAR_TOLERANCE
    # Sources with unreliable year data that omit km and variant-family tags.
    lenient_sources: tuple[str, ...] = DEFAULT_LENIENT_SOURCES
    catalogue_sources: tuple[str, ...] = DEFAULT_CATALOGUE_SOURCES
    max_plausible_km: int = MAX_PLAUSIBLE_KM
    buy_confidence_threshold: int = BUY_CONFIDENCE_THRESHOLD
    pass_count_threshold: int = PASS_COUNT_THRESHOLD
    days_on_market_threshold: int = DAYS_ON_MARKET_THRESHOLD
    price_drop_threshold_pct: float = PRICE_DROP_THRESHOLD_PCT
    fingerprint_ttl_days: int = DEFAULT_FINGERPRINT_TTL_DAYS

    @classmethod
    def from_env(cls) -> MatchConfig:
        return cls(
            year_tolerance=_env_int("RESTOCK_YEAR_TOLERANCE", DEFAULT_YEAR_TOLERANCE),
            lenient_year_tolerance=_env_int(
                "RESTOCK_LENIENT_YEAR_TOLERANCE", LENIENT_YEAR_TOLERANCE
            ),
            lenient_sources=_env_markers("RESTOCK_LENIENT_SOURCES", DEFAULT_LENIENT_SOURCES),
            catalogue_sources=_env_markers(
                "RESTOCK_CATALOGUE_SOURCES", DEFAULT_CATALOGUE_SOURCES
            ),
            max_plausible_km=_env_int("RESTOCK_MAX_PLAUSIBLE_KM", MAX_PLAUSIBLE_KM),
            buy_confidence_threshold=_env_int(
                "RESTOCK_BUY_CONFIDENCE_THRESHOLD", BUY_CONFIDENCE_THRESHOLD
            ),
            pass_count_threshold=_env_int("RESTOCK_PASS_COUNT_THRESHOLD", PASS_COUNT_THRESHOLD),
            days_on_market_threshold=_env_int(
                "RESTOCK_DAYS_ON_MARKET_THRESHOLD", DAYS_ON_MARKET_THRESHOLD
            ),
            price_drop_threshold_pct=_env_float(
                "RESTOCK_PRICE_DROP_PCT", PRICE_DROP_THRESHOLD_PCT
            ),
            fingerprint_ttl_days=_env_int(
                "RESTOCK_FINGERPRINT_TTL_DAYS", DEFAULT_FINGERPRINT_TTL_DAYS
            ),
        )


# ── Records ─────────────────────────────────────────────────────────


def _upper_tag(value: Any) -> str | None:
    text = clean_str(value)
    return text.upper() if text else None


@dataclass(frozen=True)
class Fingerprint:
    """A dealer's standing "find me this" specification, derived from a sale."""

    fingerprint_id: str
    make: str
    model: str
    dealer_id: str | None = None
    dealer_name: str | None = None
    variant_normalised: str | None = None
    variant_family: str | None = None
    year: int | None = None
    sale_km: int | None = None
    min_km: int | None = None
    max_km: int | None = None
    engine: str | None = None
    drivetrain: str | None = None
    transmission: str | None = None
    is_active: bool = True
    do_not_buy: bool = False
    expires_at: datetime | None = None
    shared_opt_in: bool = False
    is_manual: bool = False
    fingerprint_type: str | None = None
    sale_date: datetime | None = None

    @classmethod
    def from_dict(
        cls, raw: dict[str, Any], *, ttl_days: int = DEFAULT_FINGERPRINT_TTL_DAYS
    ) -> Fingerprint:
        sale_date = parse_datetime(raw.get("sale_date"))
        expires_at = parse_datetime(raw.get("expires_at"))
        if expires_at is None and sale_date is not None:
            expires_at = sale_date + timedelta(days=ttl_days)
        return cls(
            fingerprint_id=str(raw.get("fingerprint_id") or raw.get("id") or ""),
            make=clean_str(raw.get("make")) or "",
            model=clean_str(raw.get("model")) or "",
            dealer_id=clean_str(raw.get("dealer_id")),
            dealer_name=clean_str(raw.get("dealer_name")),
            variant_normalised=clean_str(raw.get("variant_normalised")),
            variant_family=_upper_tag(raw.get("variant_family")),
            year=parse_int(raw.get("year")),
            sale_km=parse_int(raw.get("sale_km")),
            min_km=parse_int(raw.get("min_km")),
            max_km=parse_int(raw.get("max_km")),
            engine=clean_str(raw.get("engine")),
            drivetrain=clean_str(raw.get("drivetrain")),
            transmission=clean_str(raw.get("transmission")),
            is_active=parse_flag(raw.get("is_active"), default=True),
            do_not_buy=parse_flag(raw.get("do_not_buy")),
            expires_at=expires_at,
            shared_opt_in=parse_flag(raw.get("shared_opt_in")),
            is_manual=parse_flag(raw.get("is_manual")),
            fingerprint_type=clean_str(raw.get("fingerprint_type")),
            sale_date=sale_date,
        )

    @property
    def is_spec_only(self) -> bool:
        return (
            self.fingerprint_type == "spec_only"
            or not self.sale_km
            or self.min_km is None
            or self.max_km is None
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at

    def is_eligible(self, now: datetime) -> bool:
        return self.is_active and not self.do_not_buy and not self.is_expired(now)


@dataclass(frozen=True)
class InventoryRow:
    """A wholesale lot or retail listing as produced by ingestion."""

    row_id: str
    make: str
    model: str
    variant_raw: str | None = None
    variant_normalised: str | None = None
    variant_family: str | None = None
    year: int | None = None
    km: int | None = None
    engine: str | None = None
    fuel: str | None = None
    drivetrain: str | None = None
    transmission: str | None = None
    status: str = ""
    auction_at: datetime | None = None
    auction_date_raw: str | None = None
    source_name: str | None = None
    source_type: str | None = None
    auction_house: str | None = None
    visible_to_dealers: bool = False
    excluded_reason: str | None = None
    confidence_score: int = 0
    action: Action | None = None
    pass_count: int = 0
    relist_count: int = 0
    first_seen_at: datetime | None = None
    price_original: float | None = None
    price_current: float | None = None
    description_score: int | None = None
    estimated_margin: float | None = None
    listing_url: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> InventoryRow:
        date_raw = clean_str(
            raw.get("auction_datetime") or raw.get("auction_at") or raw.get("auction_date")
        )
        return cls(
            row_id=str(raw.get("row_id") or raw.get("lot_id") or raw.get("id") or ""),
            make=clean_str(raw.get("make")) or "",
            model=clean_str(raw.get("model")) or "",
            variant_raw=clean_str(raw.get("variant_raw")),
            variant_normalised=clean_str(raw.get("variant_normalised")),
            variant_family=_upper_tag(raw.get("variant_family")),
            year=parse_int(raw.get("year")),
            km=parse_int(raw.get("km")),
            engine=clean_str(raw.get("engine")),
            fuel=clean_str(raw.get("fuel")),
            drivetrain=clean_str(raw.get("drivetrain")),
            transmission=clean_str(raw.get("transmission")),
            status=normalize_status(raw.get("status")),
            auction_at=parse_datetime(date_raw),
            auction_date_raw=date_raw,
            source_name=clean_str(raw.get("source_name") or raw.get("source")),
            source_type=clean_str(raw.get("source_type")),
            auction_house=clean_str(raw.get("auction_house")),
            visible_to_dealers=parse_flag(raw.get("visible_to_dealers")),
            excluded_reason=clean_str(raw.get("excluded_reason")),
            confidence_score=parse_int(raw.get("confidence_score")) or 0,
            action=Action.parse(raw.get("action")),
            pass_count=parse_int(raw.get("pass_count")) or 0,
            relist_count=parse_int(raw.get("relist_count")) or 0,
            first_seen_at=parse_datetime(raw.get("first_seen_at")),
            price_original=parse_price(raw.get("price_original")),
            price_current=parse_price(raw.get("price_current")),
            description_score=parse_int(raw.get("description_score")),
            estimated_margin=parse_price(raw.get("estimated_margin")),
            listing_url=clean_str(raw.get("listing_url")),
        )

    def has_confirmed_km(self, cap: int = MAX_PLAUSIBLE_KM) -> bool:
        """Odometer is confirmed only when ``0 < km < cap`` (placeholders excluded)."""
        return self.km is not None and 0 < self.km < cap

    @property
    def auction_date_unknown(self) -> bool:
        return self.auction_at is None

    @property
    def source_label(self) -> str:
        return self.source_name or self.auction_house or ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_id": self.row_id,
            "make": self.make,
            "model": self.model,
            "variant_normalised": self.variant_normalised,
            "variant_family": self.variant_family,
            "year": self.year,
            "km": self.km,
            "status": self.status,
            "auction_at": self.auction_at.isoformat() if self.auction_at else None,
            "source_name": self.source_name,
            "auction_house": self.auction_house,
            "confidence_score": self.confidence_score,
            "action": self.action.value if self.action else None,
            "listing_url": self.listing_url,
        }


# ── Matches ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MatchOutcome:
    """What a tier rule yields before scope overrides are applied."""
    match_type: MatchType
    tier: Tier
    lane: Lane
    confidence: MatchConfidence


TIER1_KM_BOUNDED = MatchOutcome(
    MatchType.KM_BOUNDED, Tier.EXACT, Lane.PRECISION, MatchConfidence.EXACT
)
TIER2_SPEC_ONLY = MatchOutcome(
    MatchType.SPEC_ONLY, Tier.PROBABLE, Lane.PROBABLE, MatchConfidence.PROBABLE
)
TIER2_VARIANT_FAMILY = MatchOutcome(
    MatchType.VARIANT_FAMILY, Tier.PROBABLE, Lane.PROBABLE, MatchConfidence.PROBABLE
)


@dataclass
class Match:
    fingerprint: Fingerprint
    row: InventoryRow
    match_type: MatchType
    tier: Tier
    lane: Lane
    confidence: MatchConfidence
    scope: Scope
    rule: str
    visibility_only: bool = False
    action: Action = Action.WATCH
    action_reason: str = ""
    signals: list[str] = field(default_factory=list)

    @property
    def date_unknown(self) -> bool:
        return self.row.auction_date_unknown

    def to_dict(self) -> dict[str, Any]:
        return {
            "fingerprint_id": self.fingerprint.fingerprint_id,
            "dealer_id": self.fingerprint.dealer_id,
            "row_id": self.row.row_id,
            "match_type": self.match_type.value,
            "tier": self.tier.value,
            "lane": self.lane.value,
            "confidence": self.confidence.value,
            "scope": self.scope.value,
            "rule": self.rule,
            "visibility_only": self.visibility_only,
            "date_unknown": self.date_unknown,
            "action": self.action.value,
            "action_reason": self.action_reason,
            "pressure_signals": list(self.signals),
            "row": self.row.to_dict(),
        }
