"""Taxonomy reference: repository protocol plus in-memory and HTTP backends."""

from restock_mcp.taxonomy.remote import SHARED_TAXONOMY_CACHE, HttpTaxonomyRepository
from restock_mcp.taxonomy.repository import (
    CanonicalModel,
    InMemoryTaxonomyRepository,
    SalesTruthRecord,
    TaxonomyLookupError,
    TaxonomyRepository,
    VariantRank,
)

__all__ = [
    "CanonicalModel",
    "HttpTaxonomyRepository",
    "InMemoryTaxonomyRepository",
    "SHARED_TAXONOMY_CACHE",
    "SalesTruthRecord",
    "TaxonomyLookupError",
    "TaxonomyRepository",
    "VariantRank",
]
