from __future__ import annotations

"""
Video-conferencing sessions (Amazon Chime SDK meetings).

Design intent:
- Meeting media is handled by the browser SDK; the backend only creates sessions and join credentials.
- Created meetings are cached in memory so the second participant can fetch them by id.
- Provider failures surface as ConferencingError so the HTTP layer can map them to 500.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from .aws import create_client, error_details
from .contracts import Credential, MediaPlacement, MeetingInfo, SessionDescriptor

logger = logging.getLogger(__name__)


class ConferencingError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ConferencingProvider(ABC):
    @abstractmethod
    async def create_session(self, external_id: Optional[str] = None) -> SessionDescriptor: ...

    @abstractmethod
    def get_session(self, meeting_id: str) -> Optional[SessionDescriptor]: ...

    @abstractmethod
    async def create_participant_credential(self, meeting_id: str, external_user_id: str) -> Credential: ...

    @abstractmethod
    async def delete_session(self, meeting_id: str) -> None: ...


class ChimeConferencingProvider(ConferencingProvider):
    def __init__(self, region: str, client_factory: Optional[Callable[[], Any]] = None) -> None:
        self._region = region
        self._client_factory = client_factory or (lambda: create_client("chime-sdk-meetings", region))
        self._client: Any = None
        self._sessions: Dict[str, SessionDescriptor] = {}

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        method = getattr(self._get_client(), operation)
        try:
            return await loop.run_in_executor(None, lambda: method(**kwargs))
        except Exception as exc:
            code, status = error_details(exc)
            logger.warning(
                "chime_call_failed operation=%s code=%s status=%s error=%s",
                operation,
                code,
                status,
                exc,
            )
            raise ConferencingError(code or "CHIME_ERROR", str(exc) or exc.__class__.__name__) from exc

    async def create_session(self, external_id: Optional[str] = None) -> SessionDescriptor:
        external_meeting_id = external_id or f"video-consulta-{uuid.uuid4()}"
        response = await self._call(
            "create_meeting",
            ClientRequestToken=str(uuid.uuid4()),
            MediaRegion=self._region,
            ExternalMeetingId=external_meeting_id,
        )
        meeting = response.get("Meeting") or {}
        placement = meeting.get("MediaPlacement")
        meeting_id = meeting.get("MeetingId")
        if not meeting_id or not placement:
            raise ConferencingError("INVALID_RESPONSE", "Chime CreateMeeting returned invalid response")

        info = MeetingInfo(
            meeting_id=meeting_id,
            media_placement=MediaPlacement(
                audio_host_url=placement.get("AudioHostUrl") or "",
                audio_fallback_url=placement.get("AudioFallbackUrl") or "",
                signaling_url=placement.get("SignalingUrl") or "",
                turn_control_url=placement.get("TurnControlUrl") or "",
            ),
            media_region=meeting.get("MediaRegion") or self._region,
        )
        descriptor = SessionDescriptor(
            meeting_id=meeting_id,
            external_meeting_id=external_meeting_id,
            meeting=info,
        )
        self._sessions[meeting_id] = descriptor
        logger.info("chime_meeting_created meeting_id=%s external_id=%s", meeting_id, external_meeting_id)
        return descriptor

    def get_session(self, meeting_id: str) -> Optional[SessionDescriptor]:
        return self._sessions.get(meeting_id)

    async def create_participant_credential(self, meeting_id: str, external_user_id: str) -> Credential:
        response = await self._call(
            "create_attendee",
            MeetingId=meeting_id,
            ExternalUserId=external_user_id,
        )
        attendee = response.get("Attendee") or {}
        if not attendee.get("AttendeeId") or not attendee.get("JoinToken"):
            raise ConferencingError("INVALID_RESPONSE", "Chime CreateAttendee returned invalid response")
        return Credential(
            attendee_id=attendee["AttendeeId"],
            join_token=attendee["JoinToken"],
            external_user_id=external_user_id,
        )

    async def delete_session(self, meeting_id: str) -> None:
        await self._call("delete_meeting", MeetingId=meeting_id)
        self._sessions.pop(meeting_id, None)
        logger.info("chime_meeting_deleted meeting_id=%s", meeting_id)
