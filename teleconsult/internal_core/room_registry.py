from __future__ import annotations

"""
Room membership and per-connection session metadata.

Design intent:
- A room exists iff it has at least one member.
- join/leave/broadcast never suspend, so they are atomic on the event loop.
- Delivery is best effort: closed or failing channels are skipped, never fatal to a broadcast.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Optional, Protocol, Set

from .transcribe.stream_manager import TranscriptionStreamManager

logger = logging.getLogger(__name__)


class ParticipantChannel(Protocol):
    @property
    def is_open(self) -> bool: ...

    def send(self, text: str) -> None: ...


@dataclass
class ChannelSession:
    room_id: str
    role: Optional[str] = None
    patient_id: Optional[str] = None


def _serialize(message: Any) -> str:
    return message if isinstance(message, str) else json.dumps(message, ensure_ascii=False)


class RoomRegistry:
    def __init__(self, stream_manager: Optional[TranscriptionStreamManager] = None) -> None:
        self._stream_manager = stream_manager
        self._rooms: Dict[str, Set[Hashable]] = {}
        self._sessions: Dict[Hashable, ChannelSession] = {}

    def join(
        self,
        channel: ParticipantChannel,
        room_id: str,
        role: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> ChannelSession:
        previous = self._sessions.get(channel)
        if previous is not None and previous.room_id != room_id:
            self._remove_member(channel, previous.room_id)
        self._rooms.setdefault(room_id, set()).add(channel)
        session = ChannelSession(room_id=room_id, role=role, patient_id=patient_id)
        self._sessions[channel] = session
        logger.info(
            "room_join room_id=%s role=%s members=%s",
            room_id,
            role,
            len(self._rooms[room_id]),
        )
        return session

    def leave(self, channel: ParticipantChannel) -> None:
        if self._stream_manager is not None:
            self._stream_manager.stop(channel)
        session = self._sessions.pop(channel, None)
        if session is None:
            return
        self._remove_member(channel, session.room_id)
        logger.info("room_leave room_id=%s role=%s", session.room_id, session.role)

    def _remove_member(self, channel: ParticipantChannel, room_id: str) -> None:
        members = self._rooms.get(room_id)
        if members is None:
            return
        members.discard(channel)
        if not members:
            del self._rooms[room_id]
            logger.debug("room_closed room_id=%s", room_id)

    def session_of(self, channel: ParticipantChannel) -> Optional[ChannelSession]:
        return self._sessions.get(channel)

    def members(self, room_id: str) -> List[ParticipantChannel]:
        return list(self._rooms.get(room_id, ()))

    def room_ids(self) -> List[str]:
        return sorted(self._rooms)

    def broadcast(
        self,
        room_id: str,
        message: Any,
        exclude: Optional[ParticipantChannel] = None,
    ) -> int:
        members = self._rooms.get(room_id)
        if not members:
            return 0
        text = _serialize(message)
        delivered = 0
        for member in list(members):
            if member is exclude:
                continue
            if self._deliver(member, text):
                delivered += 1
        return delivered

    def send(self, channel: ParticipantChannel, message: Any) -> bool:
        return self._deliver(channel, _serialize(message))

    def _deliver(self, channel: ParticipantChannel, text: str) -> bool:
        if not channel.is_open:
            return False
        try:
            channel.send(text)
        except Exception as exc:
            logger.warning("channel_send_failed error=%s", exc)
            return False
        return True
