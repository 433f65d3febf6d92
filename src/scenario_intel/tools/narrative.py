"""Narrative rendering for quantified findings.

Deterministic mode maps each finding to a titled block. Enhanced mode asks
the external narrative service to rewrite titles and claims, then accepts
the result only if it matches the deterministic blocks one-to-one with
citations untouched. Anything else falls back to the deterministic output.
"""

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from scenario_intel.data.cache import NarrativeCache
from scenario_intel.data.narrative_client import NarrativeServiceClient, get_default_client
from scenario_intel.prompts.templates import NARRATIVE_SYSTEM_PROMPT
from scenario_intel.utils.citations import cited_tokens, numeric_tokens
from scenario_intel.utils.normalize import content_hash
from scenario_intel.utils.sanitize import sanitize_text

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 10.0

CATEGORY_TITLES: dict[str, str] = {
    "survival": "Survival Posture",
    "revenue": "Revenue Distribution",
    "capital": "Capital Position",
    "runway": "Runway Horizon",
    "sensitivity": "Key Sensitivity Drivers",
    "risk": "Risk Assessment",
    "valuation": "Valuation Signal",
    "confidence": "Model Confidence",
}

_CITATION_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "label": {"type": "string"},
        "value": {"type": "string"},
    },
    "required": ["label", "value"],
}

NARRATIVE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "blocks": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "id": {"type": "string"},
                    "category": {"type": "string"},
                    "severity": {"type": "string", "enum": ["positive", "neutral", "warning", "critical"]},
                    "title": {"type": "string"},
                    "claim": {"type": "string"},
                    "citations": {"type": "array", "items": _CITATION_SCHEMA},
                },
                "required": ["id", "category", "severity", "title", "claim", "citations"],
            },
        },
    },
    "required": ["blocks"],
}


class NarrativeValidationError(ValueError):
    """Raised when an enhanced narrative does not match its findings."""

    pass


def generate_narrative(findings: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Deterministic blocks, one per finding, titled by category."""
    blocks = [
        {
            "id": f["id"],
            "category": f["category"],
            "severity": f["severity"],
            "title": CATEGORY_TITLES.get(f["category"], f["category"]),
            "claim": f["narrative"],
            "citations": [dict(c) for c in f["citations"]],
        }
        for f in findings
    ]
    return {"source": "deterministic", "blocks": blocks}


def _normalize_citations(citations: Any) -> list[dict[str, str]] | None:
    if not isinstance(citations, list):
        return None
    out = []
    for c in citations:
        if not isinstance(c, dict) or not isinstance(c.get("label"), str) or not isinstance(c.get("value"), str):
            return None
        out.append({"label": c["label"], "value": c["value"]})
    return out


def validate_enhanced_blocks(
    parsed: Any,
    expected: Sequence[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """
    Check a service response against the deterministic blocks.

    Args:
        parsed: Decoded JSON from the service
        expected: Deterministic blocks for the same findings

    Returns:
        Accepted blocks (service title and claim, original citations)

    Raises:
        NarrativeValidationError: On any mismatch
    """
    if not isinstance(parsed, dict) or not isinstance(parsed.get("blocks"), list):
        raise NarrativeValidationError("blocks_missing")
    blocks = parsed["blocks"]
    if len(blocks) != len(expected):
        raise NarrativeValidationError(f"block_count {len(blocks)} != {len(expected)}")

    accepted: list[dict[str, Any]] = []
    for block, want in zip(blocks, expected):
        if not isinstance(block, dict):
            raise NarrativeValidationError("bad_block")
        for key in ("id", "category", "severity"):
            if block.get(key) != want[key]:
                raise NarrativeValidationError(f"{key}_mismatch in {want['id']}")
        if _normalize_citations(block.get("citations")) != want["citations"]:
            raise NarrativeValidationError(f"citations_changed in {want['id']}")

        title = sanitize_text(block.get("title")) if isinstance(block.get("title"), str) else None
        claim = sanitize_text(block.get("claim"), max_length=1200) if isinstance(block.get("claim"), str) else None
        if not title or not claim:
            raise NarrativeValidationError(f"empty_text in {want['id']}")

        allowed = cited_tokens(want["citations"])
        uncited = [t for t in numeric_tokens(claim) + numeric_tokens(title) if t not in allowed]
        if uncited:
            raise NarrativeValidationError(f"uncited_numbers {uncited} in {want['id']}")

        accepted.append({**want, "title": title, "claim": claim})

    return accepted


async def _fetch_enhanced(
    client: NarrativeServiceClient,
    deterministic: dict[str, Any],
) -> list[dict[str, Any]]:
    user_payload = {
        "findings": [
            {
                "id": b["id"],
                "category": b["category"],
                "severity": b["severity"],
                "narrative": b["claim"],
                "citations": b["citations"],
            }
            for b in deterministic["blocks"]
        ]
    }
    text = await client.respond(
        NARRATIVE_SYSTEM_PROMPT, user_payload, "quantified_narrative", NARRATIVE_SCHEMA
    )
    if not text:
        raise NarrativeValidationError("empty_response")
    try:
        parsed = json.loads(text)
    except ValueError as e:
        raise NarrativeValidationError(f"invalid_json: {e}") from e
    return validate_enhanced_blocks(parsed, deterministic["blocks"])


async def generate_narrative_async(
    findings: Sequence[Mapping[str, Any]],
    client: NarrativeServiceClient | None = None,
    timeout: float = TIMEOUT_SECONDS,
    cache: NarrativeCache | None = None,
) -> dict[str, Any]:
    """
    Enhanced narrative with deterministic fallback.

    Uses the injected client, or the environment-configured one when the
    service is enabled. Never raises: disabled service, timeout, transport
    error or an invalid response all return the deterministic output.

    Args:
        findings: Quantified findings
        client: Narrative service client (default: from environment)
        timeout: Overall budget for the service call, retries included
        cache: Optional cache of accepted blocks keyed by findings hash

    Returns:
        NarrativeOutput dict with source "openai" or "deterministic"
    """
    deterministic = generate_narrative(findings)
    if not findings:
        return deterministic

    if client is None:
        client = get_default_client()
    if client is None:
        logger.debug("narrative service disabled; using deterministic narrative")
        return deterministic

    async def fetch() -> list[dict[str, Any]]:
        return await _fetch_enhanced(client, deterministic)

    try:
        if cache is not None:
            key = "narrative:" + content_hash(deterministic["blocks"])
            coro = cache.get_or_fetch(key, fetch)
        else:
            coro = fetch()
        blocks = await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"narrative service exceeded {timeout}s; using deterministic narrative")
        return deterministic
    except NarrativeValidationError as e:
        logger.warning(f"narrative service response rejected ({e}); using deterministic narrative")
        return deterministic
    except Exception as e:
        logger.warning(f"narrative service failed ({type(e).__name__}: {e}); using deterministic narrative")
        return deterministic

    return {"source": "openai", "blocks": blocks}
