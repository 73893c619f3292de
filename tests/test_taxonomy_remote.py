"""Tests for the HTTP taxonomy repository and the taxonomy facade."""

from __future__ import annotations

import json
import time
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from restock_mcp.data.taxonomy import get_taxonomy, set_taxonomy
from restock_mcp.identity.normalizer import NormalizeInput, normalize_vehicle_identity
from restock_mcp.taxonomy import (
    SHARED_TAXONOMY_CACHE,
    CanonicalModel,
    HttpTaxonomyRepository,
    InMemoryTaxonomyRepository,
    TaxonomyLookupError,
    TaxonomyRepository,
)
from restock_mcp.taxonomy.remote import _TTLCache

BASE_URL = "https://taxonomy.example.test/"


def _mock_response(payload: Any, status: int = 200) -> AsyncMock:
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=ctx)
    ctx.__aexit__ = AsyncMock(return_value=False)
    ctx.status = status
    ctx.json = AsyncMock(return_value=payload)
    return ctx


def _repo(*responses: Any, cache: _TTLCache | None = None) -> HttpTaxonomyRepository:
    repo = HttpTaxonomyRepository(BASE_URL, cache=cache or _TTLCache(ttl=60))
    repo.session = MagicMock()
    repo.session.get = MagicMock(side_effect=list(responses))
    return repo


_MODEL_ROWS = [
    {"canonical_model": "Hilux", "family_key": "HILUX_FORTUNER", "aliases": ["hi lux"]},
    {"canonical_model": "Fortuner", "family_key": "HILUX_FORTUNER", "aliases": None},
]


class TestTTLCache:
    def test_set_and_get(self):
        cache = _TTLCache(ttl=60)
        cache.set("k", [1])
        assert cache.get("k") == [1]

    def test_expired_entry_returns_none(self):
        cache = _TTLCache(ttl=0)
        cache.set("k", [1])
        time.sleep(0.01)
        assert cache.get("k") is None


class TestHttpTaxonomyRepository:
    async def test_canonical_models(self):
        repo = _repo(_mock_response(_MODEL_ROWS))
        models = await repo.get_canonical_models("Toyota")

        assert models == [
            CanonicalModel("Toyota", "Hilux", "HILUX_FORTUNER", ("hi lux",)),
            CanonicalModel("Toyota", "Fortuner", "HILUX_FORTUNER", ()),
        ]
        args, kwargs = repo.session.get.call_args
        assert args[0] == "https://taxonomy.example.test/rest/v1/taxonomy_models"
        assert kwargs["params"]["make"] == "ilike.Toyota"

    async def test_variant_ranks_filters_by_model_when_given(self):
        rows = [{"canonical_variant": "SR5", "rank": "3", "aliases": ["sr 5"]}]
        repo = _repo(_mock_response(rows), _mock_response([]))

        ranks = await repo.get_variant_ranks("Toyota", "Hilux")
        assert ranks[0].canonical_variant == "SR5"
        assert ranks[0].rank == 3
        assert repo.session.get.call_args.kwargs["params"]["model"] == "ilike.Hilux"

        await repo.get_variant_ranks("Toyota")
        assert "model" not in repo.session.get.call_args.kwargs["params"]

    async def test_dealer_truth(self):
        rows = [{"model": "Hilux", "variant": "SR5", "count_sold": 11}]
        repo = _repo(_mock_response(rows))
        truth = await repo.get_dealer_truth("d1", "Toyota", "HILUX_FORTUNER")

        assert truth[0].count_sold == 11
        params = repo.session.get.call_args.kwargs["params"]
        assert params["dealer_id"] == "eq.d1"
        assert params["family_key"] == "eq.HILUX_FORTUNER"

    async def test_non_dict_rows_are_dropped(self):
        repo = _repo(_mock_response([_MODEL_ROWS[0], "junk", 3]))
        assert len(await repo.get_canonical_models("Toyota")) == 1

    async def test_non_list_payload_is_empty(self):
        repo = _repo(_mock_response({"message": "unexpected"}))
        assert await repo.get_canonical_models("Toyota") == []

    async def test_server_error_retried_once(self):
        repo = _repo(_mock_response(None, status=503), _mock_response(_MODEL_ROWS))
        assert len(await repo.get_canonical_models("Toyota")) == 2
        assert repo.session.get.call_count == 2

    async def test_transport_error_retried_once(self):
        repo = _repo(aiohttp.ClientError("reset"), _mock_response(_MODEL_ROWS))
        assert len(await repo.get_canonical_models("Toyota")) == 2

    async def test_repeated_server_error_raises(self):
        repo = _repo(_mock_response(None, 502), _mock_response(None, 503))
        with pytest.raises(TaxonomyLookupError) as exc_info:
            await repo.get_canonical_models("Toyota")
        assert exc_info.value.code == "HTTP_ERROR"
        assert exc_info.value.status == 503

    async def test_client_error_not_retried(self):
        repo = _repo(_mock_response(None, 404))
        with pytest.raises(TaxonomyLookupError) as exc_info:
            await repo.get_canonical_models("Toyota")
        assert exc_info.value.status == 404
        assert repo.session.get.call_count == 1

    async def test_repeated_transport_error_raises(self):
        repo = _repo(aiohttp.ClientError("down"), TimeoutError())
        with pytest.raises(TaxonomyLookupError) as exc_info:
            await repo.get_canonical_models("Toyota")
        assert exc_info.value.code == "TRANSPORT_ERROR"

    async def test_invalid_json_body_raises_lookup_error(self):
        resp = _mock_response(None)
        resp.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "", 0))
        repo = _repo(resp)
        with pytest.raises(TaxonomyLookupError) as exc_info:
            await repo.get_canonical_models("Toyota")
        assert exc_info.value.code == "BAD_PAYLOAD"
        assert exc_info.value.status == 200

    async def test_invalid_json_body_degrades_identity(self):
        resp = _mock_response(None)
        resp.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "", 0))
        result = await normalize_vehicle_identity(
            _repo(resp), NormalizeInput(make_raw="Toyota", model_raw="hilux")
        )
        assert result.model == "Hilux"
        assert result.confidence == 30
        assert "TAXONOMY_LOOKUP_FAILED" in result.explain

    async def test_cache_hit_skips_request(self):
        repo = _repo(_mock_response(_MODEL_ROWS))
        await repo.get_canonical_models("Toyota")
        await repo.get_canonical_models("Toyota")
        assert repo.session.get.call_count == 1

    async def test_cache_shared_across_instances(self):
        shared = _TTLCache(ttl=60)
        first = _repo(_mock_response(_MODEL_ROWS), cache=shared)
        await first.get_canonical_models("Toyota")

        second = _repo(cache=shared)
        assert len(await second.get_canonical_models("Toyota")) == 2
        assert second.session.get.call_count == 0

    async def test_requires_context_manager(self):
        repo = HttpTaxonomyRepository(BASE_URL)
        with pytest.raises(RuntimeError):
            await repo.get_canonical_models("Toyota")

    async def test_context_manager_sets_auth_headers(self):
        async with HttpTaxonomyRepository(BASE_URL, " secret ") as repo:
            assert repo.session.headers["apikey"] == "secret"
            assert repo.session.headers["Authorization"] == "Bearer secret"
        assert repo.session is None


class TestTaxonomyFacade:
    def test_injected_repository_is_returned(self, taxonomy):
        assert get_taxonomy() is taxonomy

    def test_remote_when_url_configured(self, monkeypatch):
        set_taxonomy(None)
        monkeypatch.setenv("RESTOCK_TAXONOMY_URL", BASE_URL)
        first, second = get_taxonomy(), get_taxonomy()
        assert isinstance(first, HttpTaxonomyRepository)
        assert first is not second
        assert first._cache is SHARED_TAXONOMY_CACHE

    async def test_seeded_default(self):
        set_taxonomy(None)
        repo = get_taxonomy()
        assert isinstance(repo, InMemoryTaxonomyRepository)
        assert isinstance(repo, TaxonomyRepository)
        assert get_taxonomy() is repo
        models = await repo.get_canonical_models("toyota")
        assert "Hilux" in [m.canonical_model for m in models]
