"""Shared orchestration helpers for CIP-routed tool implementations."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from cip_protocol import CIP

RAW_SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _build_raw_response(tool_name: str, data_context: dict[str, Any]) -> str:
    payload = {
        "_raw": True,
        "_tool": tool_name,
        "_meta": {"schema_version": RAW_SCHEMA_VERSION},
        "data": data_context,
    }
    return json.dumps(payload, indent=2, default=str)


def _build_cross_domain_context(context_notes: str | None) -> dict[str, Any] | None:
    if not context_notes or not context_notes.strip():
        return None
    return {"orchestrator_notes": context_notes.strip()}


async def run_tool_with_orchestration(
    cip: CIP,
    *,
    user_input: str,
    tool_name: str,
    data_context: dict[str, Any],
    scaffold_id: str | None = None,
    policy: str | None = None,
    context_notes: str | None = None,
    raw: bool = False,
) -> str:
    """Return the raw JSON envelope, or the CIP narrative for *data_context*."""
    if raw:
        return _build_raw_response(tool_name, data_context)

    result = await cip.run(
        user_input,
        tool_name=tool_name,
        data_context=data_context,
        scaffold_id=scaffold_id,
        policy=policy,
        cross_domain_context=_build_cross_domain_context(context_notes),
    )
    return result.response.content
