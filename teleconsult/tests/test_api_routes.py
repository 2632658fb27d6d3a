import base64
from dataclasses import replace
from typing import Optional

from fastapi.testclient import TestClient

from teleconsult.api.main import app
from teleconsult.internal_core.config import load_config
from teleconsult.internal_core.conferencing import ConferencingError, ConferencingProvider
from teleconsult.internal_core.contracts import Credential, MediaPlacement, MeetingInfo, SessionDescriptor
from teleconsult.realtime import build_coordinator


class FakeConferencing(ConferencingProvider):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.meetings: dict = {}
        self.deleted: list = []

    async def create_session(self, external_id: Optional[str] = None) -> SessionDescriptor:
        if self.fail:
            raise ConferencingError("ServiceFailureException", "chime unavailable")
        info = MeetingInfo(meeting_id="m-1", media_placement=MediaPlacement(), media_region="us-east-1")
        descriptor = SessionDescriptor(
            meeting_id="m-1", external_meeting_id=external_id or "video-consulta-x", meeting=info
        )
        self.meetings["m-1"] = descriptor
        return descriptor

    def get_session(self, meeting_id: str) -> Optional[SessionDescriptor]:
        return self.meetings.get(meeting_id)

    async def create_participant_credential(self, meeting_id: str, external_user_id: str) -> Credential:
        if self.fail:
            raise ConferencingError("NotFoundException", "meeting gone")
        return Credential(attendee_id="a-1", join_token="t-1", external_user_id=external_user_id)

    async def delete_session(self, meeting_id: str) -> None:
        self.deleted.append(meeting_id)
        self.meetings.pop(meeting_id, None)


def _install(conferencing: Optional[ConferencingProvider] = None) -> None:
    config = replace(load_config(), TRANSCRIBE_PROVIDER="mock", BEDROCK_AGENT_ID="")
    app.state.config = config
    app.state.coordinator = build_coordinator(config)
    app.state.conferencing = conferencing or FakeConferencing()


def _handshake(ws) -> None:
    ws.send_json({"type": "request_patient_history", "payload": {"patientId": "1"}})
    assert ws.receive_json()["type"] == "patient_history"


def test_health_and_root() -> None:
    _install()
    with TestClient(app) as client:
        assert client.get("/health").json() == {"ok": True}
        assert "/ws" in client.get("/").json()["message"]


def test_patient_history_route() -> None:
    _install()
    with TestClient(app) as client:
        known = client.get("/api/patient-history/1").json()
        unknown = client.get("/api/patient-history/zzz").json()
    assert known["ultimaConsulta"] == "2024-01-15"
    assert unknown["patientId"] == "zzz"
    assert unknown["medicacionActual"] == []


def test_chime_meeting_lifecycle() -> None:
    conferencing = FakeConferencing()
    _install(conferencing)
    with TestClient(app) as client:
        created = client.post("/api/chime/meeting", json={"externalMeetingId": "consulta-1"})
        assert created.status_code == 200
        assert created.json()["meetingId"] == "m-1"
        assert created.json()["externalMeetingId"] == "consulta-1"

        fetched = client.get("/api/chime/meeting/m-1")
        assert fetched.status_code == 200
        assert fetched.json()["mediaRegion"] == "us-east-1"

        attendee = client.post("/api/chime/attendee", json={"meetingId": "m-1", "externalUserId": "paciente-1"})
        assert attendee.json() == {"attendeeId": "a-1", "joinToken": "t-1", "externalUserId": "paciente-1"}

        assert client.delete("/api/chime/meeting/m-1").json() == {"ok": True, "meetingId": "m-1"}
        assert client.get("/api/chime/meeting/m-1").status_code == 404
    assert conferencing.deleted == ["m-1"]


def test_chime_meeting_without_body_uses_generated_external_id() -> None:
    _install()
    with TestClient(app) as client:
        response = client.post("/api/chime/meeting")
    assert response.status_code == 200
    assert response.json()["externalMeetingId"] == "video-consulta-x"


def test_chime_error_paths() -> None:
    _install(FakeConferencing(fail=True))
    with TestClient(app) as client:
        assert client.get("/api/chime/meeting/unknown").status_code == 404
        missing = client.post("/api/chime/attendee", json={"meetingId": "m-1"})
        assert missing.status_code == 400
        assert "externalUserId" in missing.json()["detail"]
        failed = client.post("/api/chime/meeting", json={})
        assert failed.status_code == 500
        assert "chime unavailable" in failed.json()["detail"]
        attendee = client.post("/api/chime/attendee", json={"meetingId": "m-1", "externalUserId": "u"})
        assert attendee.status_code == 500


def test_ws_patient_history_known_and_unknown() -> None:
    _install()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?roomId=r-hist&role=medico") as ws:
            ws.send_json({"type": "request_patient_history", "payload": {"patientId": "1"}})
            known = ws.receive_json()
            ws.send_json({"type": "request_patient_history", "payload": {"patientId": "zzz"}})
            unknown = ws.receive_json()
    assert known["type"] == "patient_history"
    assert known["payload"]["ultimaConsulta"] == "2024-01-15"
    assert unknown["payload"]["patientId"] == "zzz"
    assert unknown["payload"]["antecedentesRelevantes"] == []


def test_ws_garbage_does_not_close_connection() -> None:
    _install()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?roomId=r-garbage") as ws:
            ws.send_text("not json")
            ws.send_json({"type": "no_such_type"})
            ws.send_json({"type": "section_action", "payload": "x"})
            _handshake(ws)


def test_ws_unconfigured_agent_returns_canned_proposal() -> None:
    _install()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?roomId=r-agent&role=medico&patientId=1") as ws:
            ws.send_json(
                {
                    "type": "process_with_agent",
                    "payload": {"patientId": "1", "transcription": "Me duele la cabeza", "isPartial": False},
                }
            )
            message = ws.receive_json()
    assert message["type"] == "proposal"
    assert "agente no configurado" in message["payload"]["resumen"]
    assert message["payload"]["propuestas"] == []


def test_ws_section_action_reaches_both_participants() -> None:
    _install()
    action = {"seccion": "diagnosticos", "accion": "editada", "contenido": "HTA controlada"}
    with TestClient(app) as client:
        with client.websocket_connect("/ws?roomId=r-action&role=medico") as doctor:
            _handshake(doctor)
            with client.websocket_connect("/ws?roomId=r-action&role=paciente") as patient:
                _handshake(patient)
                doctor.send_json({"type": "section_action", "payload": action})
                assert doctor.receive_json() == {"type": "section_action", "payload": action}
                assert patient.receive_json() == {"type": "section_action", "payload": action}


def test_ws_invalid_audio_chunk_keeps_stream_active() -> None:
    _install()
    chunk = base64.b64encode(b"\x00" * 32).decode("ascii")
    with TestClient(app) as client:
        with client.websocket_connect("/ws?roomId=r-audio&role=paciente") as ws:
            ws.send_json({"type": "audio_stream_start", "payload": {"participant": "paciente"}})
            ws.send_json({"type": "audio_chunk", "payload": {"data": "***invalid***"}})
            ws.send_json({"type": "audio_chunk", "payload": {"data": chunk}})
            message = ws.receive_json()
            ws.send_json({"type": "audio_stream_end"})
    assert message["type"] == "transcription"
    assert message["payload"]["text"] == "(mock) fragmento 1 (32 bytes)"
    assert message["payload"]["participant"] == "paciente"
