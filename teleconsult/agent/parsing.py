from __future__ import annotations

"""
Best-effort parsing of free-text agent output into an AgentResponse.

Design intent:
- The agent may wrap its JSON in prose or markdown fences; find the first balanced object.
- Never raise: any failure yields an empty response and a debug log line.
"""

import json
import logging
import re
from typing import Any

from teleconsult.internal_core.contracts import AgentResponse, SectionProposal

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)


def _find_balanced_object(text: str) -> dict[str, Any] | None:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escape = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if escape:
                escape = False
                continue
            if ch == "\\":
                escape = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        candidate = json.loads(text[start : idx + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(candidate, dict):
                        return candidate
                    break
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any] | None:
    if not text:
        return None
    fence_match = _FENCE_RE.search(text)
    if fence_match:
        try:
            candidate = json.loads(fence_match.group(1))
        except json.JSONDecodeError:
            candidate = None
        if isinstance(candidate, dict):
            return candidate
    return _find_balanced_object(text)


def _coerce_proposals(raw: Any) -> list[SectionProposal]:
    if not isinstance(raw, list):
        return []
    proposals: list[SectionProposal] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        section = item.get("seccion")
        content = item.get("contenido")
        if not isinstance(section, str) or content is None:
            continue
        proposals.append(SectionProposal(section=section, content=str(content)))
    return proposals


def parse_agent_response(raw_text: Any) -> AgentResponse:
    text = raw_text if isinstance(raw_text, str) else ""
    try:
        parsed = extract_json_object(text)
    except Exception:
        logger.debug("agent_parse_failed reason=extract_error", exc_info=True)
        return AgentResponse()
    if parsed is None:
        logger.debug("agent_parse_failed reason=no_json_object chars=%s", len(text))
        return AgentResponse()

    summary = parsed.get("resumen")
    return AgentResponse(
        summary=summary if isinstance(summary, str) else None,
        proposals=_coerce_proposals(parsed.get("propuestas")),
    )
