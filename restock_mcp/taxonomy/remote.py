"""Async taxonomy repository backed by a PostgREST-style REST endpoint.

Reads the ``taxonomy_models``, ``taxonomy_variant_rank`` and
``dealer_sales_truth`` tables. All reads are idempotent and cached per
``(table, filters)`` key for the lifetime of the shared cache.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import aiohttp

from restock_mcp.taxonomy.repository import (
    CanonicalModel,
    SalesTruthRecord,
    TaxonomyLookupError,
    VariantRank,
)

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=8)
_CACHE_TTL_SECONDS = 900  # 15 minutes


class _TTLCache:
    """Simple in-memory cache with per-entry TTL."""

    def __init__(self, ttl: int = _CACHE_TTL_SECONDS) -> None:
        self._store: dict[str, tuple[float, Any]] = {}
        self._ttl = ttl

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        ts, value = entry
        if time.monotonic() - ts > self._ttl:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (time.monotonic(), value)

    def clear(self) -> None:
        self._store.clear()


SHARED_TAXONOMY_CACHE = _TTLCache()


class HttpTaxonomyRepository:
    """Async client for the taxonomy REST tables."""

    MODELS_TABLE = "taxonomy_models"
    VARIANTS_TABLE = "taxonomy_variant_rank"
    TRUTH_TABLE = "dealer_sales_truth"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        cache: _TTLCache | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key.strip()
        self.session: aiohttp.ClientSession | None = None
        self._cache = cache or _TTLCache()

    async def __aenter__(self) -> HttpTaxonomyRepository:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        self.session = aiohttp.ClientSession(headers=headers)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        """GET rows from *table* with retry on transient failures."""
        if not self.session:
            raise RuntimeError("Repository not entered as context manager")

        url = f"{self.base_url}/rest/v1/{table}"
        cache_key = f"{url}|{sorted(params.items())}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        for attempt in range(2):  # 1 retry
            try:
                async with self.session.get(
                    url, params=params, timeout=_REQUEST_TIMEOUT
                ) as resp:
                    if resp.status >= 500 and attempt == 0:
                        continue
                    if resp.status >= 400:
                        raise TaxonomyLookupError(
                            f"Taxonomy request to {table} failed with HTTP {resp.status}.",
                            code="HTTP_ERROR",
                            status=resp.status,
                        )
                    try:
                        payload = await resp.json()
                    except ValueError as exc:
                        raise TaxonomyLookupError(
                            f"Taxonomy response from {table} was not valid JSON: {exc}",
                            code="BAD_PAYLOAD",
                            status=resp.status,
                        ) from exc
            except (aiohttp.ClientError, TimeoutError) as exc:
                if attempt == 0:
                    continue
                raise TaxonomyLookupError(
                    f"Taxonomy request to {table} failed: {exc}",
                    code="TRANSPORT_ERROR",
                ) from exc

            rows = [r for r in payload if isinstance(r, dict)] if isinstance(payload, list) else []
            self._cache.set(cache_key, rows)
            return rows

        raise TaxonomyLookupError(  # pragma: no cover
            f"Taxonomy request to {table} exhausted retries.",
            code="RETRY_EXHAUSTED",
        )

    async def get_canonical_models(self, make: str) -> list[CanonicalModel]:
        rows = await self._select(
            self.MODELS_TABLE,
            {"make": f"ilike.{make}", "select": "canonical_model,family_key,aliases"},
        )
        return [CanonicalModel.from_dict(r, make=make) for r in rows]

    async def get_variant_ranks(
        self, make: str, model: str | None = None
    ) -> list[VariantRank]:
        params = {"make": f"ilike.{make}", "select": "canonical_variant,aliases,rank"}
        if model:
            params["model"] = f"ilike.{model}"
        rows = await self._select(self.VARIANTS_TABLE, params)
        return [VariantRank.from_dict(r) for r in rows]

    async def get_dealer_truth(
        self, dealer_id: str, make: str, family_key: str
    ) -> list[SalesTruthRecord]:
        rows = await self._select(
            self.TRUTH_TABLE,
            {
                "dealer_id": f"eq.{dealer_id}",
                "make": f"ilike.{make}",
                "family_key": f"eq.{family_key}",
                "select": "model,variant,count_sold",
            },
        )
        return [SalesTruthRecord.from_dict(r) for r in rows]
