"""Ordered tier rules deciding no-match / Tier-1 / Tier-2 per pair.

Rules are evaluated top to bottom; the first rule whose predicate holds
decides the pair. A rule with a ``None`` outcome rejects the pair outright.
A full fingerprint that fails the Tier-1 checks keeps falling through
to the Tier-2 rules.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime

from restock_mcp.matching.models import (
    TIER1_KM_BOUNDED,
    TIER2_SPEC_ONLY,
    TIER2_VARIANT_FAMILY,
    Fingerprint,
    InventoryRow,
    Lane,
    Match,
    MatchConfidence,
    MatchConfig,
    MatchOutcome,
    MatchType,
    Scope,
    Tier,
)
from restock_mcp.matching.scope import is_lenient_source
from restock_mcp.normalization import fold


@dataclass(frozen=True)
class PairContext:
    """Facts about one fingerprint/row pair, computed once and shared by every rule."""

    fingerprint: Fingerprint
    row: InventoryRow
    lenient_source: bool
    spec_only: bool
    km_confirmed: bool
    km_in_range: bool
    variants_equal: bool
    specs_compatible: bool
    families_equal: bool

    @classmethod
    def build(cls, fp: Fingerprint, row: InventoryRow, config: MatchConfig) -> PairContext:
        km_confirmed = row.has_confirmed_km(config.max_plausible_km)
        km_in_range = (
            km_confirmed
            and fp.min_km is not None
            and fp.max_km is not None
            and fp.min_km <= (row.km or 0) <= fp.max_km
        )
        return cls(
            fingerprint=fp,
            row=row,
            lenient_source=is_lenient_source(row, config),
            spec_only=fp.is_spec_only,
            km_confirmed=km_confirmed,
            km_in_range=km_in_range,
            variants_equal=_both_equal(fp.variant_normalised, row.variant_normalised),
            specs_compatible=_specs_compatible(fp, row),
            families_equal=_both_equal(fp.variant_family, row.variant_family),
        )


@dataclass(frozen=True)
class TierRule:
    name: str
    predicate: Callable[[PairContext], bool]
    outcome: MatchOutcome | None


def _both_equal(a: str | None, b: str | None) -> bool:
    fa, fb = fold(a), fold(b)
    return bool(fa) and fa == fb


def _compatible(a: str | None, b: str | None) -> bool:
    fa, fb = fold(a), fold(b)
    return not fa or not fb or fa == fb


def _specs_compatible(fp: Fingerprint, row: InventoryRow) -> bool:
    return (
        _compatible(fp.engine, row.engine or row.fuel)
        and _compatible(fp.drivetrain, row.drivetrain)
        and _compatible(fp.transmission, row.transmission)
    )


def _tier1_spec(ctx: PairContext) -> bool:
    return not ctx.spec_only and ctx.variants_equal and ctx.specs_compatible


DEFAULT_RULES: tuple[TierRule, ...] = (
    # Spec-only fingerprints never reach Tier-1.
    TierRule(
        "spec_only_lenient_source",
        lambda c: c.spec_only and c.lenient_source,
        TIER2_SPEC_ONLY,
    ),
    TierRule(
        "spec_only_exact_variant",
        lambda c: c.spec_only and c.variants_equal,
        TIER2_SPEC_ONLY,
    ),
    TierRule(
        "spec_only_variant_family",
        lambda c: c.spec_only and c.families_equal,
        TIER2_SPEC_ONLY,
    ),
    TierRule("spec_only_unmatched", lambda c: c.spec_only, None),
    TierRule(
        "tier1_km_bounded",
        lambda c: _tier1_spec(c) and c.km_in_range,
        TIER1_KM_BOUNDED,
    ),
    TierRule(
        "tier1_km_unobserved",
        lambda c: _tier1_spec(c) and not c.km_confirmed and c.lenient_source,
        TIER2_SPEC_ONLY,
    ),
    TierRule(
        "tier2_km_out_of_range",
        lambda c: (
            c.families_equal
            and not c.lenient_source
            and c.km_confirmed
            and not c.km_in_range
        ),
        None,
    ),
    TierRule("tier2_variant_family", lambda c: c.families_equal, TIER2_VARIANT_FAMILY),
    TierRule("tier2_source_fallback", lambda c: c.lenient_source, TIER2_SPEC_ONLY),
)


def check_preconditions(
    fp: Fingerprint,
    row: InventoryRow,
    *,
    now: datetime,
    config: MatchConfig,
) -> str | None:
    """Return the first failed precondition, or ``None`` when the pair may match."""
    if not fp.is_active:
        return "fingerprint_inactive"
    if fp.do_not_buy:
        return "fingerprint_do_not_buy"
    if fp.is_expired(now):
        return "fingerprint_expired"
    if row.excluded_reason:
        return "row_excluded"
    if row.status in {"sold", "withdrawn"}:
        return "row_terminal"
    if not _both_equal(fp.make, row.make) or not _both_equal(fp.model, row.model):
        return "make_model_mismatch"
    if fp.year is None or row.year is None:
        return "year_missing"
    tolerance = (
        config.lenient_year_tolerance
        if is_lenient_source(row, config)
        else config.year_tolerance
    )
    if abs(fp.year - row.year) > tolerance:
        return "year_out_of_tolerance"
    return None


def evaluate_rules(
    ctx: PairContext, rules: Sequence[TierRule] = DEFAULT_RULES
) -> tuple[TierRule, MatchOutcome] | None:
    for rule in rules:
        if rule.predicate(ctx):
            if rule.outcome is None:
                return None
            return rule, rule.outcome
    return None


def match_pair(
    fp: Fingerprint,
    row: InventoryRow,
    *,
    scope: Scope,
    now: datetime,
    config: MatchConfig | None = None,
    rules: Sequence[TierRule] = DEFAULT_RULES,
) -> Match | None:
    """Match one pair within *scope*; visibility scope is forced to Tier-2."""
    cfg = config or MatchConfig()
    if check_preconditions(fp, row, now=now, config=cfg) is not None:
        return None

    decided = evaluate_rules(PairContext.build(fp, row, cfg), rules)
    if decided is None:
        return None
    rule, outcome = decided

    match = Match(
        fingerprint=fp,
        row=row,
        match_type=outcome.match_type,
        tier=outcome.tier,
        lane=outcome.lane,
        confidence=outcome.confidence,
        scope=scope,
        rule=rule.name,
    )
    if scope is Scope.VISIBILITY:
        match.tier = Tier.PROBABLE
        match.lane = Lane.PROBABLE
        match.confidence = MatchConfidence.PROBABLE
        match.visibility_only = True
        if match.match_type is MatchType.KM_BOUNDED:
            match.match_type = MatchType.VARIANT_FAMILY
    return match
