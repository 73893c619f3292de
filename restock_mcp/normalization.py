"""Shared canonical normalization functions for listing and fingerprint data.

Single source of truth, imported by the identity normalizer (text blobs),
the record parsers (numeric/date/flag fields) and the scope classifier
(status codes).
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from restock_mcp.constants import KNOWN_STATUSES, STATUS_CODE_MAP

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")

_TRUE_FLAGS = frozenset({"y", "yes", "true", "1", "t"})
_FALSE_FLAGS = frozenset({"n", "no", "false", "0", "f"})


# ── Text ────────────────────────────────────────────────────────────


def norm_text(value: str | None) -> str:
    """Lower-case, ``&`` → ``and``, collapse non-alphanumerics to single spaces."""
    if not value:
        return ""
    lowered = value.lower().replace("&", "and")
    return _NON_ALNUM_RE.sub(" ", lowered).strip()


def norm_slug(value: str | None) -> str:
    return norm_text(value).replace(" ", "-")


def title_case(value: str) -> str:
    return " ".join(w[:1].upper() + w[1:] if w else w for w in value.split(" "))


def fold(value: str | None) -> str:
    """Case- and whitespace-insensitive comparison key."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.strip().lower())


def contains_phrase(blob: str, phrase: str) -> bool:
    """True if *phrase* appears in *blob* as whole tokens (both pre-normalised)."""
    if not phrase:
        return False
    return f" {phrase} " in f" {blob} "


# ── Numbers ─────────────────────────────────────────────────────────


def clean_numeric_string(raw: str) -> str:
    """Keep only digits, ``'.'``, and ``'-'``."""
    return "".join(c for c in raw if c.isdigit() or c in {".", "-"})


def parse_price(value: Any) -> float | None:
    """Best-effort price parsing.  Returns ``None`` for unparseable input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        cleaned = clean_numeric_string(stripped)
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def parse_int(value: Any) -> int | None:
    """Best-effort integer parsing.  Returns ``None`` for unparseable input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        parsed = parse_price(stripped)
        if parsed is None:
            return None
        return int(parsed)
    return None


# ── Flags, strings, dates ───────────────────────────────────────────


def parse_flag(value: Any, default: bool = False) -> bool:
    """Parse ``'Y'``/``'N'`` style flags (also bools and truthy strings)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_FLAGS:
            return True
        if lowered in _FALSE_FLAGS:
            return False
    return default


def clean_str(value: Any) -> str | None:
    """Stripped string, or ``None`` for missing/blank values."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO or common AU/US date strings into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    for fmt in ("%d/%m/%Y", "%d/%m/%Y %H:%M", "%d-%m-%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def normalize_status(raw: Any) -> str:
    """Map auction numeric status codes and casing variants to canonical status."""
    if raw is None:
        return ""
    text = str(raw).strip()
    if not text:
        return ""
    if text in STATUS_CODE_MAP:
        return STATUS_CODE_MAP[text]
    lowered = text.lower().replace(" ", "_").replace("-", "_")
    if lowered in KNOWN_STATUSES:
        return lowered
    return text
