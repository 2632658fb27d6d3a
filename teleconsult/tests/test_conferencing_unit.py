import asyncio

import pytest
from botocore.exceptions import ClientError

from teleconsult.internal_core.conferencing import ChimeConferencingProvider, ConferencingError


class FakeChimeClient:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.calls: list = []

    def _record(self, name: str, kwargs: dict) -> None:
        self.calls.append((name, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def create_meeting(self, **kwargs):
        self._record("create_meeting", kwargs)
        return {
            "Meeting": {
                "MeetingId": "meeting-1",
                "MediaRegion": "us-east-1",
                "MediaPlacement": {
                    "AudioHostUrl": "audio.example",
                    "SignalingUrl": "wss://signal.example",
                },
            }
        }

    def create_attendee(self, **kwargs):
        self._record("create_attendee", kwargs)
        return {"Attendee": {"AttendeeId": "att-1", "JoinToken": "token-1"}}

    def delete_meeting(self, **kwargs):
        self._record("delete_meeting", kwargs)
        return {}


def _provider(client: FakeChimeClient) -> ChimeConferencingProvider:
    return ChimeConferencingProvider(region="us-east-1", client_factory=lambda: client)


def test_create_session_caches_meeting() -> None:
    client = FakeChimeClient()
    provider = _provider(client)
    descriptor = asyncio.run(provider.create_session())

    assert descriptor.meeting_id == "meeting-1"
    assert descriptor.external_meeting_id.startswith("video-consulta-")
    assert descriptor.meeting.media_placement.audio_fallback_url == ""
    assert provider.get_session("meeting-1") == descriptor
    name, kwargs = client.calls[0]
    assert name == "create_meeting"
    assert kwargs["MediaRegion"] == "us-east-1"
    assert kwargs["ClientRequestToken"]

    body = descriptor.model_dump(by_alias=True)
    assert body["meeting"]["mediaPlacement"]["signalingUrl"] == "wss://signal.example"
    assert body["externalMeetingId"] == descriptor.external_meeting_id


def test_create_session_keeps_caller_external_id() -> None:
    descriptor = asyncio.run(_provider(FakeChimeClient()).create_session("consulta-42"))
    assert descriptor.external_meeting_id == "consulta-42"


def test_create_participant_credential_and_delete() -> None:
    client = FakeChimeClient()
    provider = _provider(client)

    async def scenario():
        await provider.create_session()
        credential = await provider.create_participant_credential("meeting-1", "medico-1")
        await provider.delete_session("meeting-1")
        return credential

    credential = asyncio.run(scenario())
    assert credential.model_dump(by_alias=True) == {
        "attendeeId": "att-1",
        "joinToken": "token-1",
        "externalUserId": "medico-1",
    }
    assert provider.get_session("meeting-1") is None
    assert client.calls[-1] == ("delete_meeting", {"MeetingId": "meeting-1"})


def test_provider_failures_become_conferencing_errors() -> None:
    error = ClientError({"Error": {"Code": "ForbiddenException", "Message": "denied"}}, "CreateMeeting")
    with pytest.raises(ConferencingError) as excinfo:
        asyncio.run(_provider(FakeChimeClient(fail_with=error)).create_session())
    assert excinfo.value.code == "ForbiddenException"
