"""Demo taxonomy seeded into the in-memory repository when no remote is configured."""

from __future__ import annotations

from restock_mcp.taxonomy.repository import (
    CanonicalModel,
    InMemoryTaxonomyRepository,
    SalesTruthRecord,
    VariantRank,
)

DEMO_DEALER_ID = "dealer-demo-001"

# (make, canonical_model, family_key, aliases)
_MODELS: tuple[tuple[str, str, str, tuple[str, ...]], ...] = (
    ("Toyota", "Hilux", "HILUX_FORTUNER", ("hi lux",)),
    ("Toyota", "Fortuner", "HILUX_FORTUNER", ()),
    ("Toyota", "LandCruiser", "LC_200_300", ("land cruiser", "lc300", "lc200")),
    ("Toyota", "LandCruiser Prado", "LC_PRADO", ("prado",)),
    ("Toyota", "RAV4", "RAV4", ("rav 4",)),
    ("Ford", "Ranger", "RANGER_EVEREST", ()),
    ("Ford", "Everest", "RANGER_EVEREST", ()),
    ("Isuzu", "D-Max", "D_MAX_MU_X", ("dmax",)),
    ("Isuzu", "MU-X", "D_MAX_MU_X", ("mux",)),
    ("Mazda", "BT-50", "BT50", ("bt50",)),
)

# (make, model) -> [(canonical_variant, rank, aliases)]
_VARIANTS: dict[tuple[str, str], tuple[tuple[str, int, tuple[str, ...]], ...]] = {
    ("Toyota", "Hilux"): (
        ("Workmate", 1, ()),
        ("SR", 2, ()),
        ("SR5", 3, ("sr 5",)),
        ("Rogue", 4, ()),
        ("Rugged X", 4, ("ruggedx",)),
        ("GR Sport", 5, ("gr-s", "grs")),
    ),
    ("Toyota", "LandCruiser"): (
        ("Workmate", 1, ()),
        ("GX", 2, ()),
        ("GXL", 3, ()),
        ("VX", 4, ()),
        ("Sahara", 5, ()),
    ),
    ("Toyota", "LandCruiser Prado"): (
        ("GX", 1, ()),
        ("GXL", 2, ()),
        ("VX", 3, ()),
        ("Kakadu", 4, ()),
    ),
    ("Ford", "Ranger"): (
        ("XL", 1, ()),
        ("XLS", 2, ()),
        ("XLT", 3, ()),
        ("Sport", 3, ()),
        ("Wildtrak", 4, ("wild trak",)),
        ("Raptor", 5, ()),
    ),
    ("Ford", "Everest"): (
        ("Ambiente", 1, ()),
        ("Trend", 2, ()),
        ("Sport", 2, ()),
        ("Titanium", 3, ()),
        ("Platinum", 4, ()),
    ),
    ("Isuzu", "D-Max"): (
        ("SX", 1, ()),
        ("LS-M", 2, ("lsm",)),
        ("LS-U", 3, ("lsu",)),
        ("X-Terrain", 4, ("xterrain",)),
    ),
}

# (dealer_id, make, family_key) -> [(model, variant, count_sold)]
_TRUTH: dict[tuple[str, str, str], tuple[tuple[str, str | None, int], ...]] = {
    (DEMO_DEALER_ID, "Toyota", "LC_PRADO"): (
        ("LandCruiser Prado", "GXL", 6),
        ("LandCruiser", "GXL", 1),
    ),
    (DEMO_DEALER_ID, "Ford", "RANGER_EVEREST"): (
        ("Ranger", "XLT", 9),
        ("Everest", "Trend", 2),
    ),
    (DEMO_DEALER_ID, "Toyota", "HILUX_FORTUNER"): (
        ("Hilux", "SR5", 11),
        ("Fortuner", None, 1),
    ),
}


def seed_demo_taxonomy(repo: InMemoryTaxonomyRepository) -> InMemoryTaxonomyRepository:
    """Populate *repo* with the demo models, variant ladders and dealer truth."""
    for make, canonical, family, aliases in _MODELS:
        repo.add_model(
            CanonicalModel(
                make=make, canonical_model=canonical, family_key=family, aliases=aliases
            )
        )
    for (make, model), rows in _VARIANTS.items():
        repo.add_variants(
            make,
            model,
            [VariantRank(canonical_variant=v, rank=r, aliases=a) for v, r, a in rows],
        )
    for (dealer_id, make, family), rows in _TRUTH.items():
        repo.add_truth(
            dealer_id,
            make,
            family,
            [SalesTruthRecord(model=m, variant=v, count_sold=c) for m, v, c in rows],
        )
    return repo
