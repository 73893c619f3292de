"""Shared test fixtures: MockProvider injection, seeded taxonomy, cache clearing."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest
from cip_protocol import CIP
from cip_protocol.llm.providers.mock import MockProvider
from cip_protocol.scaffold.matcher import clear_matcher_cache

from restock_mcp.config import RESTOCK_DOMAIN_CONFIG
from restock_mcp.data.seed import seed_demo_taxonomy
from restock_mcp.data.taxonomy import set_taxonomy
from restock_mcp.server import set_cip_override
from restock_mcp.taxonomy.remote import SHARED_TAXONOMY_CACHE
from restock_mcp.taxonomy.repository import InMemoryTaxonomyRepository

from factories import NOW

SCAFFOLD_DIR = str(Path(__file__).resolve().parent.parent / "restock_mcp" / "scaffolds")


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def mock_provider() -> MockProvider:
    """A fresh MockProvider for each test."""
    return MockProvider("Mock LLM response for Restock CIP.")


@pytest.fixture()
def mock_cip(mock_provider: MockProvider) -> CIP:
    """CIP instance wired with real scaffolds + MockProvider."""
    return CIP.from_config(RESTOCK_DOMAIN_CONFIG, SCAFFOLD_DIR, mock_provider)


@pytest.fixture(autouse=True)
def _inject_mock_cip(mock_cip: CIP):
    """Auto-inject the mock CIP into the server singleton for every test."""
    set_cip_override(mock_cip)
    yield
    set_cip_override(None)


@pytest.fixture()
def taxonomy() -> InMemoryTaxonomyRepository:
    return seed_demo_taxonomy(InMemoryTaxonomyRepository())


@pytest.fixture(autouse=True)
def _inject_test_taxonomy(taxonomy: InMemoryTaxonomyRepository, monkeypatch):
    """Give every test a fresh seeded in-memory taxonomy and no remote config."""
    monkeypatch.delenv("RESTOCK_TAXONOMY_URL", raising=False)
    set_taxonomy(taxonomy)
    SHARED_TAXONOMY_CACHE.clear()
    yield
    set_taxonomy(None)
    SHARED_TAXONOMY_CACHE.clear()


@pytest.fixture(autouse=True)
def _clear_matcher_cache():
    """Clear matcher cache before and after each test to prevent cross-test pollution."""
    clear_matcher_cache()
    yield
    clear_matcher_cache()
