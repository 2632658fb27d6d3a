from __future__ import annotations

import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Participant = Literal["medico", "paciente"]

SectionActionKind = Literal["aceptada", "rechazada", "editada"]

OutboundType = Literal[
    "transcription",
    "patient_history",
    "proposal",
    "proposal_error",
    "section_action",
    "transcription_error",
]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str
    is_partial: bool = Field(alias="isPartial")
    participant: Optional[Participant] = None
    timestamp: int = Field(default_factory=_now_ms)


class SectionProposal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section: str = Field(alias="seccion")
    content: str = Field(alias="contenido")


class AgentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: Optional[str] = Field(default=None, alias="resumen")
    proposals: List[SectionProposal] = Field(default_factory=list, alias="propuestas")


class PatientHistorySummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str = Field(alias="patientId")
    summary: str = Field(alias="resumen")
    last_visit_date: Optional[str] = Field(default=None, alias="ultimaConsulta")
    relevant_background: List[str] = Field(default_factory=list, alias="antecedentesRelevantes")
    current_medication: List[str] = Field(default_factory=list, alias="medicacionActual")


class MediaPlacement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_host_url: str = Field(default="", alias="audioHostUrl")
    audio_fallback_url: str = Field(default="", alias="audioFallbackUrl")
    signaling_url: str = Field(default="", alias="signalingUrl")
    turn_control_url: str = Field(default="", alias="turnControlUrl")


class MeetingInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(alias="meetingId")
    media_placement: MediaPlacement = Field(alias="mediaPlacement")
    media_region: str = Field(alias="mediaRegion")


class SessionDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(alias="meetingId")
    external_meeting_id: str = Field(alias="externalMeetingId")
    meeting: MeetingInfo


class Credential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    attendee_id: str = Field(alias="attendeeId")
    join_token: str = Field(alias="joinToken")
    external_user_id: Optional[str] = Field(default=None, alias="externalUserId")


# Inbound payloads. Unknown keys are tolerated; wrong types are rejected.


def _patient_id_text(value: Any) -> Any:
    # JS clients may send numeric ids; history keys are strings.
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return value


class PatientHistoryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: Optional[str] = Field(default=None, alias="patientId")

    @field_validator("patient_id", mode="before")
    @classmethod
    def _coerce_patient_id(cls, value: Any) -> Any:
        return _patient_id_text(value)


class ProcessWithAgentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: Optional[str] = Field(default=None, alias="patientId")
    transcription: str = ""
    is_partial: bool = Field(default=False, alias="isPartial")
    current_sections: Optional[Dict[str, str]] = Field(default=None, alias="currentSections")
    active_section: Optional[str] = Field(default=None, alias="activeSection")

    @field_validator("patient_id", mode="before")
    @classmethod
    def _coerce_patient_id(cls, value: Any) -> Any:
        return _patient_id_text(value)


class SectionActionRequest(BaseModel):
    seccion: str
    accion: SectionActionKind
    contenido: Optional[str] = None


class AudioStreamStartRequest(BaseModel):
    participant: str = "unknown"


class AudioChunkRequest(BaseModel):
    data: str = ""


def envelope(message_type: OutboundType, payload: Any) -> Dict[str, Any]:
    return {"type": message_type, "payload": payload}
