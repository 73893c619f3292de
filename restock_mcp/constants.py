"""Shared constants used across the identity and matching modules.

Single source of truth for make vocabulary, status sets and rule thresholds.
"""

from __future__ import annotations

NORMALIZER_VERSION = "v1.0-hybrid"

# Scanned in order; first whole-token hit wins.
KNOWN_MAKES: tuple[str, ...] = (
    "toyota", "ford", "mazda", "mitsubishi", "isuzu", "nissan", "hyundai", "kia",
    "volkswagen", "subaru", "honda", "bmw", "mercedes", "audi", "lexus", "suzuki",
    "tesla", "ldv", "ram", "chevrolet", "chrysler", "dodge", "jeep",
    "land rover", "landrover", "porsche", "volvo", "peugeot", "renault", "skoda",
    "mg", "great wall", "haval", "gwm", "holden",
)

# Model families that are textually/visually confusable.
AMBIGUOUS_FAMILIES: frozenset[str] = frozenset({
    "LC_PRADO",
    "LC_200_300",
    "RANGER_EVEREST",
    "HILUX_FORTUNER",
    "D_MAX_MU_X",
})

# ── Model scoring ───────────────────────────────────────────────────

SCORE_CANON_HIT = 60
SCORE_ALIAS_HIT = 45
SCORE_URL_SLUG_HIT = 50
MAX_CANDIDATE_CONFIDENCE = 95
VARIANT_BONUS = 5

FALLBACK_CONFIDENCE_NO_TAXONOMY = 30
FALLBACK_CONFIDENCE_NO_CANDIDATES = 25
FALLBACK_CONFIDENCE_NO_MODEL = 10

TRUTH_ASSIST_CONFIDENCE_CEILING = 80
TRUTH_MIN_COUNT_SOLD = 2
TRUTH_OVERRIDE_MARGIN = 15
TRUTH_BONUS_PER_SALE = 10
TRUTH_BONUS_CAP = 40

BODY_TEXT_LIMIT = 8000

# ── Inventory status ────────────────────────────────────────────────

STATUS_CODE_MAP: dict[str, str] = {
    "0": "catalogue",
    "1": "listed",
    "2": "passed_in",
    "3": "sold",
    "4": "withdrawn",
}
KNOWN_STATUSES: frozenset[str] = frozenset(STATUS_CODE_MAP.values()) | {"upcoming"}
TERMINAL_STATUSES: frozenset[str] = frozenset({"sold", "withdrawn"})
EXECUTION_STATUSES: frozenset[str] = frozenset({"listed", "passed_in"})
VISIBILITY_STATUSES: frozenset[str] = frozenset({"catalogue", "upcoming", "listed"})

# Odometer readings at or above this are placeholders, not confirmed km.
MAX_PLAUSIBLE_KM = 900_000

# ── Matching defaults ───────────────────────────────────────────────

DEFAULT_YEAR_TOLERANCE = 1
LENIENT_YEAR_TOLERANCE = 4
DEFAULT_FINGERPRINT_TTL_DAYS = 120
DEFAULT_LENIENT_SOURCES: tuple[str, ...] = ("pickles",)
DEFAULT_CATALOGUE_SOURCES: tuple[str, ...] = ("pickles",)

# ── Pressure gate ───────────────────────────────────────────────────

BUY_CONFIDENCE_THRESHOLD = 4
PASS_COUNT_THRESHOLD = 2
DAYS_ON_MARKET_THRESHOLD = 14
PRICE_DROP_THRESHOLD_PCT = 5.0
LOT_ACTION_BUY_SCORE = 3
