"""Signature coverage for orchestration controls on server tool wrappers."""

from __future__ import annotations

import inspect

import pytest

import restock_mcp.server as server

ORCHESTRATION_PARAMS = {"provider", "scaffold_id", "policy", "context_notes", "raw"}

CIP_ROUTED_TOOLS = [
    "normalize_vehicle_identity",
    "derive_variant_family",
    "classify_inventory_scope",
    "evaluate_fingerprint_matches",
    "assess_buy_pressure",
]

NON_CIP_TOOLS = ["set_llm_provider", "get_llm_provider"]


@pytest.mark.parametrize("tool_name", CIP_ROUTED_TOOLS)
def test_cip_routed_tools_accept_orchestration_params(tool_name: str):
    fn = getattr(server, tool_name)
    params = set(inspect.signature(fn).parameters)
    assert ORCHESTRATION_PARAMS.issubset(params), (
        f"{tool_name} missing orchestration params: "
        f"{sorted(ORCHESTRATION_PARAMS - params)}"
    )


@pytest.mark.parametrize("tool_name", NON_CIP_TOOLS)
def test_non_cip_tools_do_not_accept_orchestration_params(tool_name: str):
    fn = getattr(server, tool_name)
    params = set(inspect.signature(fn).parameters)
    assert {"scaffold_id", "policy", "context_notes", "raw"}.isdisjoint(params)
