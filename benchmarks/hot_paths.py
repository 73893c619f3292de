#!/usr/bin/env python3
"""Performance benchmark for Restock CIP matching and normalisation hot paths."""

from __future__ import annotations

import argparse
import asyncio
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from restock_mcp.data.seed import DEMO_DEALER_ID, seed_demo_taxonomy
from restock_mcp.data.taxonomy import set_taxonomy
from restock_mcp.identity.normalizer import NormalizeInput, normalize_many
from restock_mcp.matching.engine import evaluate_matches
from restock_mcp.matching.models import Fingerprint, InventoryRow
from restock_mcp.matching.scope import classify_scope
from restock_mcp.taxonomy.repository import InMemoryTaxonomyRepository
from restock_mcp.tools.matching import evaluate_fingerprint_matches_impl

NOW = datetime.now(timezone.utc)

MODELS = [
    ("Toyota", "Hilux", "SR5"),
    ("Toyota", "LandCruiser Prado", "GXL"),
    ("Ford", "Ranger", "XLT"),
    ("Ford", "Everest", "Trend"),
    ("Isuzu", "D-Max", "LS-U"),
]
SOURCES = ["Manheim", "Pickles", "Grays", "Carsales", "Manheim"]
STATUSES = ["listed", "passed_in", "catalogue", "upcoming", "sold"]


def make_row(i: int) -> dict:
    make, model, variant = MODELS[i % 5]
    return {
        "row_id": f"LOT-{i:07d}",
        "make": make,
        "model": model,
        "variant_normalised": variant,
        "variant_family": variant.upper() if i % 4 else None,
        "year": 2018 + (i % 7),
        "km": None if i % 11 == 0 else 10_000 + (i * 37) % 150_000,
        "status": STATUSES[i % 5],
        "visible_to_dealers": "Y" if i % 3 else "N",
        "source_name": SOURCES[i % 5],
        "confidence_score": i % 7,
        "pass_count": i % 4,
        "auction_datetime": (NOW + timedelta(days=(i % 9) - 4)).isoformat(),
    }


def make_fingerprint(i: int) -> dict:
    make, model, variant = MODELS[i % 5]
    sale_km = 20_000 + (i * 53) % 100_000
    return {
        "fingerprint_id": f"FP-{i:05d}",
        "dealer_id": DEMO_DEALER_ID,
        "make": make,
        "model": model,
        "variant_normalised": variant,
        "variant_family": variant.upper(),
        "year": 2019 + (i % 5),
        "sale_km": sale_km,
        "min_km": None if i % 6 == 0 else sale_km - 15_000,
        "max_km": None if i % 6 == 0 else sale_km + 15_000,
        "sale_date": (NOW - timedelta(days=i % 90)).isoformat(),
    }


def make_listing(i: int) -> NormalizeInput:
    make, model, variant = MODELS[i % 5]
    return NormalizeInput(
        title=f"{2015 + i % 10} {make} {model} {variant} dual cab",
        url=f"https://listings.example/{make.lower()}/{model.lower().replace(' ', '-')}/{i}",
        dealer_id=DEMO_DEALER_ID if i % 2 else None,
    )


class NullCIP:
    """Minimal CIP mock that accepts all keyword args from orchestration."""

    async def run(self, user_input, **kwargs):
        return SimpleNamespace(response=SimpleNamespace(content="ok"))


# ── Benchmarks ────────────────────────────────────────────────────────


def bench_classify_scope(records: int, repeats: int) -> tuple[float, int]:
    rows = [InventoryRow.from_dict(make_row(i)) for i in range(records)]
    start = time.perf_counter()
    for _ in range(repeats):
        partition = classify_scope(rows, now=NOW)
    elapsed = time.perf_counter() - start
    return elapsed, len(partition.execution) + len(partition.visibility)


def bench_evaluate_matches(records: int, fingerprints: int) -> tuple[float, dict[str, int]]:
    rows = [InventoryRow.from_dict(make_row(i)) for i in range(records)]
    fps = [Fingerprint.from_dict(make_fingerprint(i)) for i in range(fingerprints)]
    start = time.perf_counter()
    report = evaluate_matches(fps, rows, now=NOW)
    elapsed = time.perf_counter() - start
    return elapsed, report.diagnostics


async def bench_match_tool(records: int, fingerprints: int, repeats: int) -> tuple[float, float]:
    inventory = [make_row(i) for i in range(records)]
    fps = [make_fingerprint(i) for i in range(fingerprints)]
    cip = NullCIP()
    # Warmup
    await evaluate_fingerprint_matches_impl(cip, fingerprints=fps, inventory=inventory, raw=True)

    start = time.perf_counter()
    for _ in range(repeats):
        await evaluate_fingerprint_matches_impl(
            cip, fingerprints=fps, inventory=inventory, lane="Precision", raw=True
        )
    elapsed = time.perf_counter() - start
    return elapsed, (elapsed / max(repeats, 1)) * 1000


async def bench_normalize_batch(listings: int) -> tuple[float, float]:
    repo = seed_demo_taxonomy(InMemoryTaxonomyRepository())
    set_taxonomy(repo)
    inputs = [make_listing(i) for i in range(listings)]
    start = time.perf_counter()
    results = await normalize_many(repo, inputs)
    elapsed = time.perf_counter() - start
    set_taxonomy(None)
    mean_confidence = sum(r.confidence for r in results) / max(len(results), 1)
    return elapsed, mean_confidence


# ── Main ──────────────────────────────────────────────────────────────


async def main() -> None:
    parser = argparse.ArgumentParser(description="Benchmark Restock CIP hot paths.")
    parser.add_argument("--records", type=int, default=5_000)
    parser.add_argument("--fingerprints", type=int, default=200)
    parser.add_argument("--repeats", type=int, default=20)
    args = parser.parse_args()

    print("restock_hot_path_benchmark")
    print(f"records={args.records}")
    print(f"fingerprints={args.fingerprints}")
    print(f"repeats={args.repeats}")
    print()

    # 1. Scope partition
    scope_elapsed, scoped = bench_classify_scope(args.records, args.repeats)
    print(f"classify_scope_seconds={scope_elapsed:.6f}")
    print(f"classify_scope_scoped_rows={scoped}")
    print()

    # 2. Full match pass (fingerprints x scoped rows)
    match_elapsed, diagnostics = bench_evaluate_matches(args.records, args.fingerprints)
    print(f"evaluate_matches_seconds={match_elapsed:.6f}")
    print(f"evaluate_matches_tier1={diagnostics['tier1_matches']}")
    print(f"evaluate_matches_tier2={diagnostics['tier2_matches']}")
    print(f"evaluate_matches_buy={diagnostics['buy_eligible']}")
    print()

    # 3. Match tool (raw mode, no LLM)
    tool_elapsed, tool_avg_ms = await bench_match_tool(
        min(args.records, 2_000), min(args.fingerprints, 50), args.repeats
    )
    print(f"tool_match_total_seconds={tool_elapsed:.6f}")
    print(f"tool_match_avg_ms={tool_avg_ms:.4f}")
    print()

    # 4. Batch identity normalisation
    norm_elapsed, mean_confidence = await bench_normalize_batch(min(args.records, 2_000))
    print(f"normalize_batch_seconds={norm_elapsed:.6f}")
    print(f"normalize_batch_mean_confidence={mean_confidence:.1f}")


if __name__ == "__main__":
    asyncio.run(main())
