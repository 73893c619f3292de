"""Taxonomy facade: selects the remote or seeded in-memory repository.

Tool modules call :func:`get_taxonomy` and enter the result with
``async with``; tests inject a repository with :func:`set_taxonomy`.
"""

from __future__ import annotations

import logging
import os

from restock_mcp.taxonomy.remote import SHARED_TAXONOMY_CACHE, HttpTaxonomyRepository
from restock_mcp.taxonomy.repository import InMemoryTaxonomyRepository, TaxonomyRepository

logger = logging.getLogger(__name__)

_taxonomy: TaxonomyRepository | None = None


def get_taxonomy() -> TaxonomyRepository:
    """Return the repository for one tool call.

    With ``RESTOCK_TAXONOMY_URL`` set, each call gets its own HTTP repository
    (one session per call) backed by the shared TTL cache. Otherwise the
    seeded in-memory singleton is returned.
    """
    global _taxonomy  # noqa: PLW0603
    if _taxonomy is not None:
        return _taxonomy

    base_url = os.environ.get("RESTOCK_TAXONOMY_URL", "").strip()
    if base_url:
        logger.debug("Using remote taxonomy at %s", base_url)
        return HttpTaxonomyRepository(
            base_url,
            os.environ.get("RESTOCK_TAXONOMY_API_KEY", ""),
            cache=SHARED_TAXONOMY_CACHE,
        )

    from restock_mcp.data.seed import seed_demo_taxonomy
    _taxonomy = seed_demo_taxonomy(InMemoryTaxonomyRepository())
    return _taxonomy


def set_taxonomy(repo: TaxonomyRepository | None) -> None:
    """Inject a repository instance for testing (mirrors ``set_cip_override``)."""
    global _taxonomy  # noqa: PLW0603
    _taxonomy = repo
