from __future__ import annotations

"""
Realtime consultation coordinator: one instance per application.

Design intent:
- Owns the room registry, stream manager, agent gateway and history provider; no module globals.
- Inbound envelopes are routed by ``type``; malformed frames are dropped without closing the connection.
- Agent work runs as per-channel tasks so audio handling on the same connection is never blocked.
- Failures stay with the originating connection.
"""

import asyncio
import base64
import binascii
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Set

from pydantic import ValidationError

from teleconsult.agent import AgentRequest, BedrockAgentGateway, parse_agent_response
from teleconsult.history import MockPatientHistoryProvider, PatientHistoryProvider, build_history_context
from teleconsult.internal_core.config import AppConfig
from teleconsult.internal_core.contracts import (
    AudioChunkRequest,
    AudioStreamStartRequest,
    PatientHistoryRequest,
    ProcessWithAgentRequest,
    SectionActionRequest,
    TranscriptSegment,
    envelope,
)
from teleconsult.internal_core.room_registry import ChannelSession, ParticipantChannel, RoomRegistry
from teleconsult.internal_core.transcribe import TranscriptionStreamManager, create_provider
from teleconsult.record import filter_proposals, is_valid_section

logger = logging.getLogger(__name__)

Handler = Callable[[ParticipantChannel, ChannelSession, Dict[str, Any]], Awaitable[None]]


def _unexpected_agent_summary(message: str) -> str:
    return (
        f"No se pudo conectar con el agente: {message}. "
        "Revisa BEDROCK_AGENT_ID y BEDROCK_AGENT_ALIAS_ID en .env."
    )


class ConsultationCoordinator:
    def __init__(
        self,
        *,
        registry: RoomRegistry,
        streams: TranscriptionStreamManager,
        gateway: BedrockAgentGateway,
        history: Optional[PatientHistoryProvider] = None,
        default_patient_id: str = "1",
    ) -> None:
        self.registry = registry
        self.streams = streams
        self.gateway = gateway
        self.history = history or MockPatientHistoryProvider()
        self.default_patient_id = default_patient_id
        self._agent_tasks: Dict[Hashable, Set[asyncio.Task]] = {}
        self._handlers: Dict[str, Handler] = {
            "transcription": self._on_transcription,
            "request_patient_history": self._on_request_patient_history,
            "process_with_agent": self._on_process_with_agent,
            "section_action": self._on_section_action,
            "audio_stream_start": self._on_audio_stream_start,
            "audio_chunk": self._on_audio_chunk,
            "audio_stream_end": self._on_audio_stream_end,
        }

    # Connection lifecycle

    def connect(
        self,
        channel: ParticipantChannel,
        room_id: str,
        role: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> ChannelSession:
        return self.registry.join(channel, room_id, role, patient_id)

    def disconnect(self, channel: ParticipantChannel) -> None:
        for task in self._agent_tasks.pop(channel, set()):
            task.cancel()
        self.registry.leave(channel)

    async def shutdown(self) -> None:
        tasks = [task for group in self._agent_tasks.values() for task in group]
        self._agent_tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.streams.shutdown()

    def pending_agent_tasks(self, channel: ParticipantChannel) -> Set[asyncio.Task]:
        return set(self._agent_tasks.get(channel, ()))

    # Inbound routing

    async def dispatch(self, channel: ParticipantChannel, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("ws_message_dropped reason=invalid_json")
            return
        if not isinstance(message, dict):
            logger.debug("ws_message_dropped reason=not_an_object")
            return

        message_type = message.get("type")
        handler = self._handlers.get(message_type) if isinstance(message_type, str) else None
        if handler is None:
            logger.debug("ws_message_dropped reason=unknown_type type=%s", message_type)
            return

        session = self.registry.session_of(channel)
        if session is None:
            logger.debug("ws_message_dropped reason=no_session type=%s", message_type)
            return

        payload = message.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            logger.debug("ws_message_dropped reason=payload_not_object type=%s", message_type)
            return

        try:
            await handler(channel, session, payload)
        except ValidationError as exc:
            logger.debug(
                "ws_message_dropped reason=invalid_payload type=%s errors=%s",
                message_type,
                exc.error_count(),
            )

    # Handlers

    async def _on_transcription(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        self.registry.broadcast(session.room_id, envelope("transcription", payload))

    async def _on_request_patient_history(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        request = PatientHistoryRequest.model_validate(payload)
        history = self.history.get(request.patient_id or self.default_patient_id)
        self.registry.send(
            channel,
            envelope("patient_history", history.model_dump(by_alias=True, exclude_none=True)),
        )

    async def _on_process_with_agent(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        request = ProcessWithAgentRequest.model_validate(payload)
        task = asyncio.create_task(self._run_agent(channel, session.room_id, request))
        group = self._agent_tasks.setdefault(channel, set())
        group.add(task)
        task.add_done_callback(lambda done, key=channel: self._forget_task(key, done))

    def _forget_task(self, channel: Hashable, task: asyncio.Task) -> None:
        group = self._agent_tasks.get(channel)
        if group is None:
            return
        group.discard(task)
        if not group:
            del self._agent_tasks[channel]

    async def _run_agent(
        self, channel: ParticipantChannel, room_id: str, request: ProcessWithAgentRequest
    ) -> None:
        try:
            history = self.history.get(request.patient_id or self.default_patient_id)
            invocation = await self.gateway.invoke_with_outcome(
                AgentRequest(
                    patient_history_context=build_history_context(history),
                    transcript_segment=request.transcription,
                    is_partial=request.is_partial,
                    current_sections=request.current_sections,
                    active_section=request.active_section,
                )
            )
            parsed = parse_agent_response(invocation.raw_text)
            failure = invocation.failure
            if failure is not None and failure.kind in ("not_found", "transient"):
                self.registry.send(channel, envelope("proposal_error", {"error": failure.message}))
            proposals = filter_proposals(parsed.proposals)
            self.registry.broadcast(
                room_id,
                envelope(
                    "proposal",
                    {
                        "resumen": parsed.summary or "",
                        "propuestas": [p.model_dump(by_alias=True) for p in proposals],
                    },
                ),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.exception("agent_processing_failed room_id=%s", room_id)
            self.registry.send(channel, envelope("proposal_error", {"error": message}))
            self.registry.broadcast(
                room_id,
                envelope("proposal", {"resumen": _unexpected_agent_summary(message), "propuestas": []}),
            )

    async def _on_section_action(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        action = SectionActionRequest.model_validate(payload)
        if not is_valid_section(action.seccion):
            logger.debug("ws_message_dropped reason=unknown_section seccion=%s", action.seccion)
            return
        self.registry.broadcast(
            session.room_id,
            envelope("section_action", action.model_dump(exclude_none=True)),
        )

    async def _on_audio_stream_start(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        request = AudioStreamStartRequest.model_validate(payload)
        room_id = session.room_id

        def on_result(segment: TranscriptSegment) -> None:
            self.registry.broadcast(
                room_id,
                envelope("transcription", segment.model_dump(by_alias=True, exclude_none=True)),
            )

        def on_error(exc: BaseException) -> None:
            self.registry.send(
                channel,
                envelope("transcription_error", {"error": str(exc) or exc.__class__.__name__}),
            )

        self.streams.start(channel, room_id, request.participant, on_result=on_result, on_error=on_error)

    async def _on_audio_chunk(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        request = AudioChunkRequest.model_validate(payload)
        try:
            chunk = base64.b64decode(request.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            logger.warning("audio_chunk_decode_failed room_id=%s error=%s", session.room_id, exc)
            return
        await self.streams.push_chunk(channel, chunk)

    async def _on_audio_stream_end(
        self, channel: ParticipantChannel, session: ChannelSession, payload: Dict[str, Any]
    ) -> None:
        self.streams.stop(channel)


def build_coordinator(config: AppConfig) -> ConsultationCoordinator:
    streams = TranscriptionStreamManager(
        lambda: create_provider(config.TRANSCRIBE_PROVIDER, region=config.AWS_REGION),
        sample_rate_hz=config.TRANSCRIBE_SAMPLE_RATE_HZ,
        language_code=config.TRANSCRIBE_LANGUAGE_CODE,
    )
    gateway = BedrockAgentGateway(
        agent_id=config.BEDROCK_AGENT_ID,
        agent_alias_id=config.BEDROCK_AGENT_ALIAS_ID,
        region=config.AWS_REGION,
    )
    logger.info(
        "coordinator_ready agent_configured=%s transcribe_provider=%s region=%s",
        config.agent_configured,
        config.TRANSCRIBE_PROVIDER,
        config.AWS_REGION,
    )
    return ConsultationCoordinator(
        registry=RoomRegistry(streams),
        streams=streams,
        gateway=gateway,
        history=MockPatientHistoryProvider(),
        default_patient_id=config.DEFAULT_PATIENT_ID,
    )
