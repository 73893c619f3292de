"""Restock CIP MCP server: FastMCP entry point for identity and match tooling."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from cip_protocol import CIP
from cip_protocol.orchestration.errors import (
    log_and_return_tool_error as _log_and_return_tool_error,
)
from cip_protocol.orchestration.pool import ProviderPool
from cip_protocol.scaffold.loader import load_scaffold_directory
from cip_protocol.scaffold.registry import ScaffoldRegistry
from mcp.server.fastmcp import FastMCP

from restock_mcp.config import RESTOCK_DOMAIN_CONFIG
from restock_mcp.tools.identity import (
    derive_variant_family_impl,
    normalize_vehicle_identity_impl,
)
from restock_mcp.tools.matching import (
    assess_buy_pressure_impl,
    classify_inventory_scope_impl,
    evaluate_fingerprint_matches_impl,
)

# Load .env from project root (no extra dependency)
_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
if _ENV_FILE.is_file():
    for line in _ENV_FILE.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            os.environ.setdefault(k.strip(), v.strip())

mcp = FastMCP("RestockCIP")
logger = logging.getLogger(__name__)

_SCAFFOLD_DIR = str(Path(__file__).parent / "scaffolds")

_pool = ProviderPool(RESTOCK_DOMAIN_CONFIG, _SCAFFOLD_DIR)

_scaffold_registry_ref: ScaffoldRegistry | None = None


def _get_scaffold_registry() -> ScaffoldRegistry:
    """Lazy scaffold registry accessor for resources/prompts."""
    global _scaffold_registry_ref  # noqa: PLW0603
    if _scaffold_registry_ref is None:
        reg = ScaffoldRegistry()
        load_scaffold_directory(_SCAFFOLD_DIR, reg)
        _scaffold_registry_ref = reg
    return _scaffold_registry_ref


def _compact_scaffold_entry(scaffold: Any) -> dict[str, Any]:
    applicability = scaffold.applicability
    return {
        "id": scaffold.id,
        "display_name": scaffold.display_name,
        "description": scaffold.description,
        "tools": list(applicability.tools or []),
        "intent_signals": list(applicability.intent_signals or []),
        "keywords": list(applicability.keywords or []),
        "tags": list(scaffold.tags or []),
    }


def _build_scaffold_catalog_payload() -> dict[str, Any]:
    reg = _get_scaffold_registry()
    entries = [_compact_scaffold_entry(s) for s in sorted(reg.all(), key=lambda s: s.id)]
    return {
        "domain": RESTOCK_DOMAIN_CONFIG.name,
        "default_scaffold_id": RESTOCK_DOMAIN_CONFIG.default_scaffold_id,
        "count": len(entries),
        "scaffolds": entries,
    }


def _build_orchestration_entry_payload() -> dict[str, Any]:
    scaffold = _get_scaffold_registry().get("orchestration_entry")
    if scaffold is None:
        return {
            "error": True,
            "message": "orchestration_entry scaffold is not available.",
        }
    return {
        "orchestration_entry": {
            "id": scaffold.id,
            "display_name": scaffold.display_name,
            "description": scaffold.description,
            "reasoning_framework": scaffold.reasoning_framework,
            "guardrails": {
                "disclaimers": scaffold.guardrails.disclaimers,
                "escalation_triggers": scaffold.guardrails.escalation_triggers,
                "prohibited_actions": scaffold.guardrails.prohibited_actions,
            },
            "tags": list(scaffold.tags or []),
        },
        "scaffold_catalog": _build_scaffold_catalog_payload(),
    }


@mcp.resource("restock://scaffolds/catalog")
def scaffold_catalog_resource() -> dict[str, Any]:
    """List available scaffold_id values with routing hints for orchestrators."""
    return _build_scaffold_catalog_payload()


@mcp.resource("restock://orchestration/entry")
def orchestration_entry_resource() -> dict[str, Any]:
    """Expose orchestration entry guidance plus the scaffold catalog."""
    return _build_orchestration_entry_payload()


@mcp.prompt()
def orchestration_entry_prompt() -> str:
    """Prompt-friendly orchestration briefing with scaffold catalog."""
    payload = _build_orchestration_entry_payload()
    return (
        "Use this orchestration entry and scaffold catalog when selecting "
        "`scaffold_id` values for Restock CIP tool calls.\n\n"
        f"{json.dumps(payload, indent=2)}"
    )


def set_cip_override(cip: CIP | None) -> None:
    """Inject a CIP instance (e.g. with MockProvider) for testing."""
    _pool.set_override(cip)


def _prepare_cip_orchestration(
    *,
    tool_name: str,
    provider: str = "",
    scaffold_id: str = "",
    policy: str = "",
    context_notes: str = "",
) -> tuple[CIP, str | None, str | None, str | None]:
    return _pool.prepare_orchestration(
        tool_name=tool_name,
        provider=provider,
        scaffold_id=scaffold_id,
        policy=policy,
        context_notes=context_notes,
    )


# ── Tool registrations ──────────────────────────────────────────────


@mcp.tool()
def set_llm_provider(provider: str, model: str = "") -> str:
    """Set the default LLM provider used for CIP reasoning.

    provider: 'anthropic' or 'openai'
    model: optional model override
    """
    try:
        return _pool.set_provider(provider, model)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="set_llm_provider",
            exc=exc,
            user_message=f"Failed to switch to {provider}: check API key is set.",
        )


@mcp.tool()
def get_llm_provider() -> str:
    """Return current default provider/model and initialized provider pool details."""
    return _pool.get_info()


@mcp.tool()
async def normalize_vehicle_identity(
    make_raw: str = "",
    model_raw: str = "",
    variant_raw: str = "",
    url: str = "",
    title: str = "",
    body_text: str = "",
    dealer_id: str = "",
    source: str = "",
    year: int | None = None,
    km: int | None = None,
    listings: list[dict] | None = None,
    provider: str = "",
    scaffold_id: str = "",
    policy: str = "",
    context_notes: str = "",
    raw: bool = False,
) -> str:
    """Resolve noisy listing text to a canonical make/model/variant with confidence.

    Pass `listings` (list of objects with the same fields) to normalise a batch.
    Every result carries an ordered `explain` trail of the rules that fired.
    """
    try:
        cip, resolved_scaffold_id, resolved_policy, resolved_context_notes = (
            _prepare_cip_orchestration(
                tool_name="normalize_vehicle_identity",
                provider=provider,
                scaffold_id=scaffold_id,
                policy=policy,
                context_notes=context_notes,
            )
        )
        return await normalize_vehicle_identity_impl(
            cip,
            make_raw=make_raw or None,
            model_raw=model_raw or None,
            variant_raw=variant_raw or None,
            url=url or None,
            title=title or None,
            body_text=body_text or None,
            dealer_id=dealer_id or None,
            source=source or None,
            year=year,
            km=km,
            listings=listings,
            scaffold_id=resolved_scaffold_id,
            policy=resolved_policy,
            context_notes=resolved_context_notes,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="normalize_vehicle_identity",
            exc=exc,
            user_message=(
                "I am having trouble resolving that vehicle identity right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def derive_variant_family(
    make: str,
    model: str,
    variant_raw: str = "",
    description: str = "",
    provider: str = "",
    scaffold_id: str = "",
    policy: str = "",
    context_notes: str = "",
    raw: bool = False,
) -> str:
    """Derive the variant-family tag (e.g. SR5, XLT, GXL) from variant/description text."""
    try:
        cip, resolved_scaffold_id, resolved_policy, resolved_context_notes = (
            _prepare_cip_orchestration(
                tool_name="derive_variant_family",
                provider=provider,
                scaffold_id=scaffold_id,
                policy=policy,
                context_notes=context_notes,
            )
        )
        return await derive_variant_family_impl(
            cip,
            make=make,
            model=model,
            variant_raw=variant_raw or None,
            description=description or None,
            scaffold_id=resolved_scaffold_id,
            policy=resolved_policy,
            context_notes=resolved_context_notes,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="derive_variant_family",
            exc=exc,
            user_message=(
                "I am having trouble deriving that variant family right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def classify_inventory_scope(
    inventory: list[dict],
    provider: str = "",
    scaffold_id: str = "",
    policy: str = "",
    context_notes: str = "",
    raw: bool = False,
) -> str:
    """Split inventory rows into execution (buy-eligible) and visibility (watch-only) scope."""
    try:
        cip, resolved_scaffold_id, resolved_policy, resolved_context_notes = (
            _prepare_cip_orchestration(
                tool_name="classify_inventory_scope",
                provider=provider,
                scaffold_id=scaffold_id,
                policy=policy,
                context_notes=context_notes,
            )
        )
        return await classify_inventory_scope_impl(
            cip,
            inventory=inventory,
            scaffold_id=resolved_scaffold_id,
            policy=resolved_policy,
            context_notes=resolved_context_notes,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="classify_inventory_scope",
            exc=exc,
            user_message=(
                "I am having trouble classifying that inventory right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def evaluate_fingerprint_matches(
    fingerprints: list[dict],
    inventory: list[dict],
    lane: str = "all",
    source_name: str = "",
    action: str = "all",
    min_confidence: int = 0,
    provider: str = "",
    scaffold_id: str = "",
    policy: str = "",
    context_notes: str = "",
    raw: bool = False,
) -> str:
    """Match dealer fingerprints against inventory.

    Results are ordered tier-1 first, then lane (Precision > Advisory > Probable),
    confidence desc and auction date asc, and grouped by lane with diagnostics.
    """
    try:
        cip, resolved_scaffold_id, resolved_policy, resolved_context_notes = (
            _prepare_cip_orchestration(
                tool_name="evaluate_fingerprint_matches",
                provider=provider,
                scaffold_id=scaffold_id,
                policy=policy,
                context_notes=context_notes,
            )
        )
        return await evaluate_fingerprint_matches_impl(
            cip,
            fingerprints=fingerprints,
            inventory=inventory,
            lane=lane or None,
            source_name=source_name or None,
            action=action or None,
            min_confidence=min_confidence,
            scaffold_id=resolved_scaffold_id,
            policy=resolved_policy,
            context_notes=resolved_context_notes,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="evaluate_fingerprint_matches",
            exc=exc,
            user_message=(
                "I am having trouble evaluating fingerprint matches right now. "
                "Please try again in a moment."
            ),
        )


@mcp.tool()
async def assess_buy_pressure(
    lot: dict,
    tier: int = 1,
    provider: str = "",
    scaffold_id: str = "",
    policy: str = "",
    context_notes: str = "",
    raw: bool = False,
) -> str:
    """Report pressure signals, lot score, flag reasons and the gated watch/buy action."""
    try:
        cip, resolved_scaffold_id, resolved_policy, resolved_context_notes = (
            _prepare_cip_orchestration(
                tool_name="assess_buy_pressure",
                provider=provider,
                scaffold_id=scaffold_id,
                policy=policy,
                context_notes=context_notes,
            )
        )
        return await assess_buy_pressure_impl(
            cip,
            lot=lot,
            tier=tier,
            scaffold_id=resolved_scaffold_id,
            policy=resolved_policy,
            context_notes=resolved_context_notes,
            raw=raw,
        )
    except ValueError as exc:
        return str(exc)
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name="assess_buy_pressure",
            exc=exc,
            user_message=(
                "I am having trouble assessing buy pressure right now. "
                "Please try again in a moment."
            ),
        )


if __name__ == "__main__":
    mcp.run()
