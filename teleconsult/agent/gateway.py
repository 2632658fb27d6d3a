from __future__ import annotations

"""
Bedrock agent gateway for clinical-record proposals.

Design intent:
- Callers never see provider exceptions: every invocation yields raw text.
- Provider failures are mapped to a closed taxonomy (not_configured / not_found / transient)
  so the router can branch without knowing botocore error shapes.
- Missing agent identity is a degraded mode with a canned answer, not an error.
"""

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from teleconsult.agent.prompt import AgentRequest, build_prompt
from teleconsult.internal_core.aws import create_client, error_details

logger = logging.getLogger(__name__)

AgentFailureKind = Literal["not_configured", "not_found", "transient"]

NOT_CONFIGURED_SUMMARY = (
    "POC: agente no configurado. La transcripción se usa cuando BEDROCK_AGENT_ID esté definido."
)
NOT_FOUND_SUMMARY = (
    "Agente de Bedrock no encontrado (404). Crea un agente en la consola AWS Bedrock y configura "
    "BEDROCK_AGENT_ID y BEDROCK_AGENT_ALIAS_ID en el .env del backend."
)


@dataclass(frozen=True)
class AgentFailure:
    kind: AgentFailureKind
    message: str


@dataclass(frozen=True)
class AgentInvocation:
    raw_text: str
    failure: Optional[AgentFailure] = None


def _canned_payload(summary: str) -> str:
    return json.dumps({"resumen": summary, "propuestas": []}, ensure_ascii=False)


def classify_agent_error(exc: BaseException) -> AgentFailure:
    code, status = error_details(exc)
    message = str(exc) or exc.__class__.__name__
    if code == "ResourceNotFoundException" or status == 404 or "doesn't exist" in message:
        return AgentFailure(kind="not_found", message=message)
    return AgentFailure(kind="transient", message=message)


def fallback_payload(failure: AgentFailure) -> str:
    if failure.kind == "not_configured":
        return _canned_payload(NOT_CONFIGURED_SUMMARY)
    if failure.kind == "not_found":
        return _canned_payload(NOT_FOUND_SUMMARY)
    return _canned_payload(
        f"Error del agente: {failure.message}. Revisa región (AWS_REGION) y permisos del agente."
    )


class BedrockAgentGateway:
    def __init__(
        self,
        *,
        agent_id: str,
        agent_alias_id: str,
        region: str,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._agent_id = (agent_id or "").strip()
        self._agent_alias_id = agent_alias_id
        self._region = region
        self._client_factory = client_factory or (lambda: create_client("bedrock-agent-runtime", region))
        self._client: Any = None

    @property
    def configured(self) -> bool:
        return bool(self._agent_id)

    async def infer(
        self,
        context: str,
        transcript_segment: str,
        is_partial: bool,
        active_section: Optional[str] = None,
    ) -> str:
        return await self.invoke(
            AgentRequest(
                patient_history_context=context,
                transcript_segment=transcript_segment,
                is_partial=is_partial,
                active_section=active_section,
            )
        )

    async def invoke(self, request: AgentRequest) -> str:
        outcome = await self.invoke_with_outcome(request)
        return outcome.raw_text

    async def invoke_with_outcome(self, request: AgentRequest) -> AgentInvocation:
        if not self.configured:
            failure = AgentFailure(kind="not_configured", message="BEDROCK_AGENT_ID is not set")
            return AgentInvocation(raw_text=fallback_payload(failure), failure=failure)

        prompt = build_prompt(request)
        session_id = f"session-{int(time.time() * 1000)}-{uuid.uuid4().hex[:10]}"
        loop = asyncio.get_running_loop()
        started = time.perf_counter()
        try:
            raw_text = await loop.run_in_executor(None, self._invoke_blocking, prompt, session_id)
        except Exception as exc:
            failure = classify_agent_error(exc)
            logger.warning(
                "agent_invoke_failed kind=%s agent_id=%s error=%s",
                failure.kind,
                self._agent_id,
                failure.message,
            )
            return AgentInvocation(raw_text=fallback_payload(failure), failure=failure)

        logger.info(
            "agent_invoke_done session_id=%s chars=%s latency_ms=%.1f",
            session_id,
            len(raw_text),
            (time.perf_counter() - started) * 1000.0,
        )
        return AgentInvocation(raw_text=raw_text)

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def _invoke_blocking(self, prompt: str, session_id: str) -> str:
        response = self._get_client().invoke_agent(
            agentId=self._agent_id,
            agentAliasId=self._agent_alias_id,
            sessionId=session_id,
            inputText=prompt,
        )
        buffer = bytearray()
        for event in response.get("completion") or []:
            data = (event.get("chunk") or {}).get("bytes")
            if data:
                buffer.extend(data)
        return buffer.decode("utf-8", errors="replace")
