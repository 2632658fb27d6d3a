from __future__ import annotations

"""
Teleconsult API surface.

Design intent:
- One participant WebSocket per connection, routed through the shared coordinator.
- Thin HTTP side-channel: health, patient history, conferencing sessions.
- Shared collaborators live on ``app.state`` so tests can swap them.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from teleconsult.internal_core.config import AppConfig, load_config
from teleconsult.internal_core.conferencing import (
    ChimeConferencingProvider,
    ConferencingError,
    ConferencingProvider,
)
from teleconsult.realtime import ConsultationCoordinator, WebSocketChannel, build_coordinator

logger = logging.getLogger(__name__)


class CreateMeetingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    external_meeting_id: Optional[str] = Field(default=None, alias="externalMeetingId")


class CreateAttendeeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: Optional[str] = Field(default=None, alias="meetingId")
    external_user_id: Optional[str] = Field(default=None, alias="externalUserId")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    _configure_logging(_get_config().TELECONSULT_LOG_LEVEL)
    yield
    coordinator = getattr(app.state, "coordinator", None)
    if isinstance(coordinator, ConsultationCoordinator):
        await coordinator.shutdown()


app = FastAPI(title="teleconsult backend service", lifespan=_lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(load_config().CORS_ALLOW_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_config() -> AppConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, AppConfig):
        return existing
    created = load_config()
    setattr(app.state, "config", created)
    return created


def _get_coordinator() -> ConsultationCoordinator:
    existing = getattr(app.state, "coordinator", None)
    if isinstance(existing, ConsultationCoordinator):
        return existing
    created = build_coordinator(_get_config())
    setattr(app.state, "coordinator", created)
    return created


def _get_conferencing() -> ConferencingProvider:
    existing = getattr(app.state, "conferencing", None)
    if isinstance(existing, ConferencingProvider):
        return existing
    created = ChimeConferencingProvider(region=_get_config().AWS_REGION)
    setattr(app.state, "conferencing", created)
    return created


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "message": "Teleconsult backend. WebSocket: /ws?roomId=&role=&patientId=",
        "health": "/health",
    }


@app.get("/api/patient-history/{patient_id}")
async def get_patient_history(patient_id: str) -> dict[str, Any]:
    history = _get_coordinator().history.get(patient_id)
    return history.model_dump(by_alias=True, exclude_none=True)


@app.post("/api/chime/meeting")
async def create_meeting(payload: Optional[CreateMeetingRequest] = None) -> dict[str, Any]:
    external_id = payload.external_meeting_id if payload is not None else None
    try:
        descriptor = await _get_conferencing().create_session(external_id)
    except ConferencingError as exc:
        logger.error("chime_create_meeting_failed code=%s error=%s", exc.code, exc.message)
        raise HTTPException(
            status_code=500, detail=f"No se pudo crear la reunión: {exc.message}"
        ) from exc
    return descriptor.model_dump(by_alias=True)


@app.get("/api/chime/meeting/{meeting_id}")
async def get_meeting(meeting_id: str) -> dict[str, Any]:
    session = _get_conferencing().get_session(meeting_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Reunión no encontrada o expirada")
    return session.meeting.model_dump(by_alias=True)


@app.delete("/api/chime/meeting/{meeting_id}")
async def delete_meeting(meeting_id: str) -> dict[str, Any]:
    try:
        await _get_conferencing().delete_session(meeting_id)
    except ConferencingError as exc:
        logger.error("chime_delete_meeting_failed meeting_id=%s error=%s", meeting_id, exc.message)
        raise HTTPException(
            status_code=500, detail=f"No se pudo eliminar la reunión: {exc.message}"
        ) from exc
    return {"ok": True, "meetingId": meeting_id}


@app.post("/api/chime/attendee")
async def create_attendee(payload: Optional[CreateAttendeeRequest] = None) -> dict[str, Any]:
    if payload is None or not payload.meeting_id or not payload.external_user_id:
        raise HTTPException(status_code=400, detail="Faltan meetingId o externalUserId")
    try:
        credential = await _get_conferencing().create_participant_credential(
            payload.meeting_id, payload.external_user_id
        )
    except ConferencingError as exc:
        logger.error("chime_create_attendee_failed code=%s error=%s", exc.code, exc.message)
        raise HTTPException(
            status_code=500, detail=f"No se pudo crear el asistente: {exc.message}"
        ) from exc
    return credential.model_dump(by_alias=True)


@app.websocket("/ws")
async def consultation_ws(websocket: WebSocket) -> None:
    await websocket.accept()
    config = _get_config()
    room_id = str(websocket.query_params.get("roomId", "") or "").strip() or config.DEFAULT_ROOM_ID
    role = websocket.query_params.get("role") or None
    patient_id = websocket.query_params.get("patientId") or None

    coordinator = _get_coordinator()
    channel = WebSocketChannel(websocket)
    channel.start()
    coordinator.connect(channel, room_id, role, patient_id)

    try:
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                logger.debug("ws_message_dropped reason=binary_frame room_id=%s", room_id)
                continue
            await coordinator.dispatch(channel, text)
    except WebSocketDisconnect:
        pass
    finally:
        coordinator.disconnect(channel)
        await channel.aclose()
        logger.info("ws_closed room_id=%s role=%s", room_id, role)
