"""Deterministic variant-family extraction and backfill.

Families come from per-make/model ladders, falling back to a generic AU
ladder. This is a backfill concern: matching only ever reads the stored
``variant_family`` tag. :func:`backfill_variant_family` is the hook ingestion
callers use to fill that tag before records reach the matcher.
"""

from __future__ import annotations

import dataclasses
import re
from functools import lru_cache
from typing import TypeVar

from restock_mcp.matching.models import Fingerprint, InventoryRow

RecordT = TypeVar("RecordT", Fingerprint, InventoryRow)

VARIANT_FAMILIES: dict[str, dict[str, tuple[str, ...]]] = {
    "toyota": {
        "landcruiser": ("GX", "GXL", "VX", "SAHARA", "KAKADU"),
        "prado": ("GX", "GXL", "VX", "KAKADU", "ALTITUDE", "INVINCIBLE"),
        "hilux": ("WORKMATE", "SR", "SR5", "ROGUE", "RUGGED", "RUGGED X", "RUGGED-X"),
        "corolla": ("ASCENT", "ASCENT SPORT", "SX", "ZR", "HYBRID", "GR", "CROSS"),
        "camry": ("ASCENT", "ASCENT SPORT", "SX", "SL", "HYBRID", "ATARA"),
        "rav4": ("GX", "GXL", "CRUISER", "EDGE", "HYBRID"),
        "kluger": ("GX", "GXL", "GRANDE", "HYBRID"),
        "fortuner": ("GX", "GXL", "CRUSADE"),
    },
    "ford": {
        "ranger": ("XL", "XLS", "XLT", "WILDTRAK", "RAPTOR", "SPORT", "FX4"),
        "everest": ("AMBIENTE", "TREND", "SPORT", "TITANIUM", "PLATINUM", "WILDTRAK"),
        "falcon": ("XT", "XR6", "XR8", "G6", "G6E", "FPV"),
    },
    "isuzu": {
        "d-max": ("SX", "LS-M", "LS-U", "X-TERRAIN", "LS", "EX"),
        "mu-x": ("LS-M", "LS-U", "LS-T", "LS"),
    },
    "mitsubishi": {
        "triton": ("GLX", "GLX+", "GLS", "GSR", "EXCEED", "BLACKLINE"),
        "pajero": ("GLX", "GLS", "EXCEED", "SPORT"),
        "outlander": ("ES", "LS", "EXCEED", "ASPIRE", "GSR", "PHEV"),
    },
    "mazda": {
        "bt-50": ("XT", "XTR", "GT", "SP", "THUNDER"),
        "cx-5": ("MAXX", "MAXX SPORT", "TOURING", "GT", "AKERA"),
    },
    "nissan": {
        "navara": ("SL", "ST", "ST-X", "PRO-4X", "N-TREK", "WARRIOR"),
        "patrol": ("TI", "TI-L", "WARRIOR"),
        "x-trail": ("ST", "ST-L", "TI", "TI-L", "N-TREK"),
    },
    "volkswagen": {
        "amarok": (
            "CORE", "LIFE", "STYLE", "PANAMERICANA", "AVENTURA",
            "HIGHLINE", "TRENDLINE", "V6",
        ),
    },
    "holden": {
        "colorado": ("LS", "LT", "LTZ", "Z71", "STORM"),
        "commodore": ("EVOKE", "SV6", "SS", "SSV", "VXR", "CALAIS"),
    },
    "hyundai": {
        "tucson": ("ACTIVE", "ELITE", "HIGHLANDER", "N-LINE"),
        "santa fe": ("ACTIVE", "ELITE", "HIGHLANDER", "CALLIGRAPHY"),
    },
    "kia": {
        "sportage": ("S", "SX", "GT-LINE", "GT"),
        "sorento": ("S", "SI", "SLI", "GT-LINE", "GT"),
    },
}

# Priority order; first hit wins.
GENERIC_FAMILIES: tuple[str, ...] = (
    "ASCENT SPORT", "RUGGED X", "RUGGED-X",
    "SR5", "GXL", "GX", "VX", "SAHARA", "KAKADU", "ROGUE", "RUGGED", "WORKMATE",
    "WILDTRAK", "RAPTOR", "XLT", "XLS", "XL", "TITANIUM", "PLATINUM", "AMBIENTE", "TREND",
    "X-TERRAIN", "LS-U", "LS-M", "LS-T",
    "LTZ", "LT", "Z71", "ZR2", "STORM",
    "ST-X", "PRO-4X", "N-TREK", "WARRIOR", "ST-L", "TI-L",
    "HIGHLANDER", "GT-LINE", "N-LINE", "ELITE", "ACTIVE",
    "GT", "GR", "RS", "SS", "SSV", "SV6", "XR6", "XR8",
    "SPORT", "PREMIUM", "LUXURY", "EXECUTIVE",
)


@lru_cache(maxsize=512)
def _family_pattern(family: str) -> re.Pattern[str]:
    # Inner "-"/"+" are optional ("LS-M" also matches "LSM"); a trailing "+" is literal.
    stem, suffix = (family[:-1], r"\+") if family.endswith("+") else (family, "")
    body = "".join("[+-]?" if ch in "+-" else re.escape(ch) for ch in stem)
    return re.compile(rf"(?<!\w){body}{suffix}(?!\w)", re.IGNORECASE)


def model_families(make: str, model: str) -> tuple[str, ...]:
    """Family ladder for *make*/*model*; partial model names match either way."""
    make_data = VARIANT_FAMILIES.get(make.strip().lower())
    if not make_data:
        return ()
    model_key = model.strip().lower()
    if model_key in make_data:
        return make_data[model_key]
    for key, families in make_data.items():
        if key in model_key or model_key in key:
            return families
    return ()


def _first_hit(families: tuple[str, ...], text: str) -> str | None:
    for family in families:
        if _family_pattern(family).search(text):
            return family.upper()
    return None


def extract_variant_family(
    make: str | None,
    model: str | None,
    variant_raw: str | None,
    description: str | None = None,
) -> str | None:
    """Return the family tag found in the variant/description text, if any."""
    if not make or not model:
        return None
    text = " ".join(t for t in (variant_raw, description) if t).strip()
    if not text:
        return None

    families = model_families(make, model)
    if not families:
        return _first_hit(GENERIC_FAMILIES, text)
    # Longer patterns first so "ASCENT SPORT" beats "ASCENT".
    return _first_hit(tuple(sorted(families, key=len, reverse=True)), text)


def backfill_variant_family(record: RecordT, description: str | None = None) -> RecordT:
    """Copy of *record* with ``variant_family`` filled when missing and derivable."""
    if record.variant_family:
        return record
    if isinstance(record, InventoryRow):
        variant_text = record.variant_raw or record.variant_normalised
    else:
        variant_text = record.variant_normalised
    family = extract_variant_family(record.make, record.model, variant_text, description)
    if family is None:
        return record
    return dataclasses.replace(record, variant_family=family)
