"""Identity resolution tool implementations."""

from __future__ import annotations

from typing import Any

from cip_protocol import CIP

from restock_mcp.data.taxonomy import get_taxonomy
from restock_mcp.identity.families import (
    GENERIC_FAMILIES,
    extract_variant_family,
    model_families,
)
from restock_mcp.identity.normalizer import (
    NormalizeInput,
    normalize_many,
    normalize_vehicle_identity,
)
from restock_mcp.tools.orchestration import run_tool_with_orchestration

MAX_BATCH_LISTINGS = 200


async def normalize_vehicle_identity_impl(
    cip: CIP,
    *,
    make_raw: str | None = None,
    model_raw: str | None = None,
    variant_raw: str | None = None,
    url: str | None = None,
    title: str | None = None,
    body_text: str | None = None,
    dealer_id: str | None = None,
    source: str | None = None,
    year: int | None = None,
    km: int | None = None,
    listings: list[dict[str, Any]] | None = None,
    scaffold_id: str | None = None,
    policy: str | None = None,
    context_notes: str | None = None,
    raw: bool = False,
) -> str:
    """Resolve one listing (or a batch via *listings*) to a canonical identity."""
    if listings:
        if len(listings) > MAX_BATCH_LISTINGS:
            return f"Batch normalisation supports at most {MAX_BATCH_LISTINGS} listings."
        if not all(isinstance(item, dict) for item in listings):
            return "Each listing must be an object of listing fields."
        inputs = [NormalizeInput.from_dict(item) for item in listings]
    else:
        if not any((make_raw, url, title, body_text)):
            return "Provide at least one of make_raw, url, title or body_text to normalise."
        inputs = [
            NormalizeInput(
                make_raw=make_raw,
                model_raw=model_raw,
                variant_raw=variant_raw,
                url=url,
                title=title,
                body_text=body_text,
                dealer_id=dealer_id,
                source=source,
                year=year,
                km=km,
            )
        ]

    async with get_taxonomy() as repo:
        if len(inputs) == 1:
            results = [await normalize_vehicle_identity(repo, inputs[0])]
        else:
            results = await normalize_many(repo, inputs)

    payload = [r.to_dict() for r in results]
    low_trust = sum(1 for r in results if r.confidence <= 30)
    if len(payload) == 1:
        top = payload[0]
        label = " ".join(str(p) for p in (top["make"], top["model"], top["variant"]) if p)
        user_input = (
            f"Explain the identity resolution for '{title or url or make_raw}': "
            f"{label or 'unidentified'} at confidence {top['confidence']}"
        )
    else:
        user_input = (
            f"Summarise identity resolution for {len(payload)} listings "
            f"({low_trust} low-trust)"
        )

    data_context: dict[str, Any] = {
        "results": payload,
        "count": len(payload),
        "low_trust_count": low_trust,
    }
    return await run_tool_with_orchestration(
        cip,
        user_input=user_input,
        tool_name="normalize_vehicle_identity",
        data_context=data_context,
        scaffold_id=scaffold_id,
        policy=policy,
        context_notes=context_notes,
        raw=raw,
    )


async def derive_variant_family_impl(
    cip: CIP,
    *,
    make: str,
    model: str,
    variant_raw: str | None = None,
    description: str | None = None,
    scaffold_id: str | None = None,
    policy: str | None = None,
    context_notes: str | None = None,
    raw: bool = False,
) -> str:
    """Derive the variant-family tag a backfill would store for this vehicle."""
    if not make.strip() or not model.strip():
        return "Both make and model are required to derive a variant family."
    if not (variant_raw or description):
        return "Provide variant_raw or description text to derive a variant family from."

    ladder = model_families(make, model)
    family = extract_variant_family(make, model, variant_raw, description)
    data_context: dict[str, Any] = {
        "make": make,
        "model": model,
        "variant_raw": variant_raw,
        "variant_family": family,
        "ladder": "model" if ladder else "generic",
        "candidates": list(ladder or GENERIC_FAMILIES),
    }
    return await run_tool_with_orchestration(
        cip,
        user_input=(
            f"Explain the variant family for {make} {model} "
            f"'{variant_raw or description}': {family or 'none found'}"
        ),
        tool_name="derive_variant_family",
        data_context=data_context,
        scaffold_id=scaffold_id,
        policy=policy,
        context_notes=context_notes,
        raw=raw,
    )
