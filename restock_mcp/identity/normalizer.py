"""Vehicle identity normalizer.

Resolves noisy listing text (URL, title, body, raw make/model/variant) into a
canonical ``{make, model, variant, family_key}`` identity using the taxonomy
repository. Every result carries a 0-100 confidence and an ordered
``explain`` trail of rule tags:

- ``MAKE_DETECTED`` / ``NO_MAKE``
- ``RULE_MODEL_CANON_HIT``, ``RULE_MODEL_ALIAS_HIT``, ``RULE_MODEL_URL_SLUG_HIT``
- ``NO_TAXONOMY_ENTRIES`` / ``NO_MODEL_CANDIDATES`` then
  ``RAW_MODEL_FALLBACK`` / ``NO_MODEL``
- ``VARIANT_DETECTED``
- ``ASSIST_OVERRIDE_DEALER_TRUTH`` / ``ASSIST_NO_OVERRIDE``
- ``TAXONOMY_LOOKUP_FAILED``, ``NORMALIZER_ERROR``

Lookup failures never raise out of :func:`normalize_vehicle_identity`; they
degrade to the low-trust fallback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from restock_mcp.constants import (
    AMBIGUOUS_FAMILIES,
    BODY_TEXT_LIMIT,
    FALLBACK_CONFIDENCE_NO_CANDIDATES,
    FALLBACK_CONFIDENCE_NO_MODEL,
    FALLBACK_CONFIDENCE_NO_TAXONOMY,
    KNOWN_MAKES,
    MAX_CANDIDATE_CONFIDENCE,
    NORMALIZER_VERSION,
    SCORE_ALIAS_HIT,
    SCORE_CANON_HIT,
    SCORE_URL_SLUG_HIT,
    TRUTH_ASSIST_CONFIDENCE_CEILING,
    TRUTH_BONUS_CAP,
    TRUTH_BONUS_PER_SALE,
    TRUTH_MIN_COUNT_SOLD,
    TRUTH_OVERRIDE_MARGIN,
    VARIANT_BONUS,
)
from restock_mcp.normalization import (
    clean_str,
    contains_phrase,
    fold,
    norm_slug,
    norm_text,
    parse_int,
    title_case,
)
from restock_mcp.taxonomy.repository import (
    CanonicalModel,
    SalesTruthRecord,
    TaxonomyLookupError,
    TaxonomyRepository,
    VariantRank,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_CONCURRENCY = 8


@dataclass
class NormalizeInput:
    make_raw: str | None = None
    model_raw: str | None = None
    variant_raw: str | None = None
    url: str | None = None
    title: str | None = None
    body_text: str | None = None
    dealer_id: str | None = None
    source: str | None = None
    year: int | None = None
    km: int | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NormalizeInput:
        return cls(
            make_raw=clean_str(raw.get("make_raw", raw.get("make"))),
            model_raw=clean_str(raw.get("model_raw", raw.get("model"))),
            variant_raw=clean_str(raw.get("variant_raw", raw.get("variant"))),
            url=clean_str(raw.get("url")),
            title=clean_str(raw.get("title")),
            body_text=clean_str(raw.get("body_text")),
            dealer_id=clean_str(raw.get("dealer_id")),
            source=clean_str(raw.get("source")),
            year=parse_int(raw.get("year")),
            km=parse_int(raw.get("km")),
        )


@dataclass
class NormalizeResult:
    make: str | None
    model: str | None
    variant: str | None
    confidence: int
    explain: list[str] = field(default_factory=list)
    family_key: str | None = None
    normalizer_version: str = NORMALIZER_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "make": self.make,
            "model": self.model,
            "variant": self.variant,
            "confidence": self.confidence,
            "explain": list(self.explain),
            "family_key": self.family_key,
            "normalizer_version": self.normalizer_version,
        }


@dataclass
class _ScoredModel:
    model: CanonicalModel
    score: int
    reasons: list[str]

    @property
    def confidence(self) -> int:
        return min(MAX_CANDIDATE_CONFIDENCE, self.score)

    @property
    def ambiguous(self) -> bool:
        return self.model.family_key in AMBIGUOUS_FAMILIES


# ── Make detection ──────────────────────────────────────────────────


def _match_known_make(text: str) -> str | None:
    for make in KNOWN_MAKES:
        collapsed = make.replace(" ", "")
        if contains_phrase(text, make) or contains_phrase(text, collapsed):
            return make
    return None


def pick_make(make_raw: str | None, url: str, title: str, body: str) -> str | None:
    """Return the lower-case make guess, or ``None`` when nothing identifies one."""
    raw = norm_text(make_raw)
    if raw:
        known = _match_known_make(raw)
        if known:
            return known
        if len(raw) > 1:
            return raw
    return _match_known_make(norm_text(f"{url} {title} {body}"))


# ── Model scoring ───────────────────────────────────────────────────


def score_model_candidates(
    models: Iterable[CanonicalModel],
    *,
    url: str,
    title: str,
    body: str,
    model_raw: str | None,
) -> list[_ScoredModel]:
    blob = norm_text(f"{url} {title} {body} {model_raw or ''}")
    url_slug = norm_slug(url)

    scored: list[_ScoredModel] = []
    for model in models:
        score = 0
        reasons: list[str] = []
        canon = norm_text(model.canonical_model)
        if canon and canon in blob:
            score += SCORE_CANON_HIT
            reasons.append("RULE_MODEL_CANON_HIT")
        for alias in model.aliases:
            alias_norm = norm_text(alias)
            if alias_norm and alias_norm in blob:
                score += SCORE_ALIAS_HIT
                reasons.append("RULE_MODEL_ALIAS_HIT")
                break
        canon_slug = norm_slug(model.canonical_model)
        if url_slug and canon_slug and canon_slug in url_slug:
            score += SCORE_URL_SLUG_HIT
            reasons.append("RULE_MODEL_URL_SLUG_HIT")
        if score > 0:
            scored.append(_ScoredModel(model=model, score=score, reasons=reasons))

    # Ties go to the longer canonical name (LandCruiser Prado over LandCruiser).
    scored.sort(key=lambda s: (-s.score, -len(s.model.canonical_model)))
    return scored


# ── Variant extraction ──────────────────────────────────────────────


def pick_variant(
    ranks: Iterable[VariantRank],
    variant_raw: str | None,
    title: str,
    body: str,
) -> str | None:
    blob = norm_text(f"{variant_raw or ''} {title} {body}")
    best: VariantRank | None = None
    for rank in ranks:
        phrases = [norm_text(rank.canonical_variant), *(norm_text(a) for a in rank.aliases)]
        if not any(contains_phrase(blob, p) for p in phrases):
            continue
        if best is None or rank.rank > best.rank:
            best = rank
    return best.canonical_variant if best else None


# ── Sales-truth assist ──────────────────────────────────────────────


def select_truth_override(
    truth: Iterable[SalesTruthRecord],
    candidates: list[_ScoredModel],
) -> tuple[SalesTruthRecord, _ScoredModel, int] | None:
    """Most-sold truth row whose model is a scored candidate, with its override score."""
    by_model = {fold(c.model.canonical_model): c for c in candidates}
    eligible = [t for t in truth if fold(t.model) in by_model]
    if not eligible:
        return None
    best = max(eligible, key=lambda t: t.count_sold)
    candidate = by_model[fold(best.model)]
    bonus = min(TRUTH_BONUS_CAP, best.count_sold * TRUTH_BONUS_PER_SALE)
    return best, candidate, candidate.score + bonus


# ── Main entry points ───────────────────────────────────────────────


async def _lookup(
    call: Callable[[], Awaitable[list[T]]], explain: list[str], what: str
) -> list[T]:
    try:
        return await call()
    except TaxonomyLookupError as exc:
        logger.warning("Taxonomy %s lookup failed (%s): %s", what, exc.code, exc)
        if "TAXONOMY_LOOKUP_FAILED" not in explain:
            explain.append("TAXONOMY_LOOKUP_FAILED")
        return []


def _fallback(
    make: str,
    inp: NormalizeInput,
    explain: list[str],
    reason: str,
    raw_confidence: int,
) -> NormalizeResult:
    raw_model = title_case(norm_text(inp.model_raw)) if inp.model_raw else None
    if not raw_model:
        raw_model = None
    explain.append(reason)
    explain.append("RAW_MODEL_FALLBACK" if raw_model else "NO_MODEL")
    return NormalizeResult(
        make=make,
        model=raw_model,
        variant=inp.variant_raw or None,
        confidence=raw_confidence if raw_model else FALLBACK_CONFIDENCE_NO_MODEL,
        explain=explain,
    )


async def normalize_vehicle_identity(
    repo: TaxonomyRepository, inp: NormalizeInput
) -> NormalizeResult:
    """Resolve *inp* to a canonical identity. Never raises on lookup failure."""
    url = inp.url or ""
    title = inp.title or ""
    body = (inp.body_text or "")[:BODY_TEXT_LIMIT]

    make_guess = pick_make(inp.make_raw, url, title, body)
    if not make_guess:
        return NormalizeResult(
            make=None, model=None, variant=None, confidence=0, explain=["NO_MAKE"]
        )

    make = title_case(make_guess)
    explain = ["MAKE_DETECTED"]

    models = await _lookup(lambda: repo.get_canonical_models(make), explain, "model")
    if not models:
        return _fallback(
            make, inp, explain, "NO_TAXONOMY_ENTRIES", FALLBACK_CONFIDENCE_NO_TAXONOMY
        )

    candidates = score_model_candidates(
        models, url=url, title=title, body=body, model_raw=inp.model_raw
    )
    if not candidates:
        return _fallback(
            make, inp, explain, "NO_MODEL_CANDIDATES", FALLBACK_CONFIDENCE_NO_CANDIDATES
        )

    baseline = candidates[0]
    chosen = baseline
    explain.extend(baseline.reasons)

    ranks = await _lookup(
        lambda: repo.get_variant_ranks(make, baseline.model.canonical_model),
        explain,
        "variant",
    )
    variant = pick_variant(ranks, inp.variant_raw, title, body)
    if variant:
        explain.append("VARIANT_DETECTED")

    if inp.dealer_id and (
        baseline.confidence < TRUTH_ASSIST_CONFIDENCE_CEILING or baseline.ambiguous
    ):
        truth = await _lookup(
            lambda: repo.get_dealer_truth(
                inp.dealer_id or "", make, baseline.model.family_key
            ),
            explain,
            "dealer truth",
        )
        override = select_truth_override(truth, candidates)
        if (
            override is not None
            and override[0].count_sold >= TRUTH_MIN_COUNT_SOLD
            and override[2] - baseline.score >= TRUTH_OVERRIDE_MARGIN
        ):
            chosen = override[1]
            explain.append("ASSIST_OVERRIDE_DEALER_TRUTH")
        else:
            explain.append("ASSIST_NO_OVERRIDE")

    confidence = max(0, min(100, chosen.confidence + (VARIANT_BONUS if variant else 0)))
    return NormalizeResult(
        make=make,
        model=chosen.model.canonical_model,
        variant=variant,
        confidence=confidence,
        explain=explain,
        family_key=chosen.model.family_key or None,
    )


async def normalize_many(
    repo: TaxonomyRepository,
    inputs: Iterable[NormalizeInput],
    concurrency: int = DEFAULT_BATCH_CONCURRENCY,
) -> list[NormalizeResult]:
    """Normalise a batch concurrently; results keep input order."""
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(inp: NormalizeInput) -> NormalizeResult:
        async with semaphore:
            try:
                return await normalize_vehicle_identity(repo, inp)
            except Exception:
                logger.exception("Identity normalisation failed for %r", inp.title or inp.url)
                return NormalizeResult(
                    make=None,
                    model=None,
                    variant=None,
                    confidence=0,
                    explain=["NORMALIZER_ERROR"],
                )

    return list(await asyncio.gather(*(_one(i) for i in inputs)))
