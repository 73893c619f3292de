"""TaxonomyRepository protocol, record types and in-memory implementation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from restock_mcp.normalization import fold, parse_int


class TaxonomyLookupError(RuntimeError):
    """Raised when a taxonomy read fails, with structured metadata."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


@dataclass(frozen=True)
class CanonicalModel:
    make: str
    canonical_model: str
    family_key: str
    aliases: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict[str, Any], *, make: str = "") -> CanonicalModel:
        aliases = raw.get("aliases") or ()
        return cls(
            make=str(raw.get("make") or make),
            canonical_model=str(raw.get("canonical_model", "")),
            family_key=str(raw.get("family_key") or ""),
            aliases=tuple(str(a) for a in aliases if a),
        )


@dataclass(frozen=True)
class VariantRank:
    canonical_variant: str
    rank: int = 0
    aliases: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> VariantRank:
        aliases = raw.get("aliases") or ()
        return cls(
            canonical_variant=str(raw.get("canonical_variant", "")),
            rank=parse_int(raw.get("rank")) or 0,
            aliases=tuple(str(a) for a in aliases if a),
        )


@dataclass(frozen=True)
class SalesTruthRecord:
    model: str
    count_sold: int
    variant: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SalesTruthRecord:
        return cls(
            model=str(raw.get("model", "")),
            count_sold=parse_int(raw.get("count_sold")) or 0,
            variant=raw.get("variant") or None,
        )


@runtime_checkable
class TaxonomyRepository(Protocol):
    """Read-only taxonomy reference consumed by the identity normalizer."""

    async def get_canonical_models(self, make: str) -> list[CanonicalModel]: ...

    async def get_variant_ranks(
        self, make: str, model: str | None = None
    ) -> list[VariantRank]: ...

    async def get_dealer_truth(
        self, dealer_id: str, make: str, family_key: str
    ) -> list[SalesTruthRecord]: ...


@dataclass
class InMemoryTaxonomyRepository:
    """Dict-backed repository. Keys are folded (case/whitespace-insensitive)."""

    models: dict[str, list[CanonicalModel]] = field(default_factory=dict)
    variants: dict[tuple[str, str], list[VariantRank]] = field(default_factory=dict)
    truth: dict[tuple[str, str, str], list[SalesTruthRecord]] = field(default_factory=dict)

    async def __aenter__(self) -> InMemoryTaxonomyRepository:
        return self

    async def __aexit__(self, *args: Any) -> None:
        return None

    def add_model(self, model: CanonicalModel) -> None:
        self.models.setdefault(fold(model.make), []).append(model)

    def add_variants(self, make: str, model: str, ranks: list[VariantRank]) -> None:
        self.variants.setdefault((fold(make), fold(model)), []).extend(ranks)

    def add_truth(
        self,
        dealer_id: str,
        make: str,
        family_key: str,
        records: list[SalesTruthRecord],
    ) -> None:
        key = (dealer_id, fold(make), family_key)
        self.truth.setdefault(key, []).extend(records)

    async def get_canonical_models(self, make: str) -> list[CanonicalModel]:
        return list(self.models.get(fold(make), []))

    async def get_variant_ranks(
        self, make: str, model: str | None = None
    ) -> list[VariantRank]:
        make_key = fold(make)
        if model is not None:
            return list(self.variants.get((make_key, fold(model)), []))
        ranks: list[VariantRank] = []
        for (m, _), rows in self.variants.items():
            if m == make_key:
                ranks.extend(rows)
        return ranks

    async def get_dealer_truth(
        self, dealer_id: str, make: str, family_key: str
    ) -> list[SalesTruthRecord]:
        return list(self.truth.get((dealer_id, fold(make), family_key), []))
