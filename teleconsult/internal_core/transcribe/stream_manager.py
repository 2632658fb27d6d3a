from __future__ import annotations

"""
Per-connection streaming transcription lifecycle.

Design intent:
- At most one provider stream per connection: Idle -> Streaming -> Idle.
- start/stop never suspend, so they are atomic on the event loop.
- A superseded stream is fully finished before its replacement opens a provider stream.
- Results that arrive after stop are dropped; end of audio is a normal completion.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Hashable, Optional, Set

from teleconsult.internal_core.contracts import TranscriptSegment

from .base import TranscriptionProvider
from .channel import AudioChunkChannel

logger = logging.getLogger(__name__)

OnTranscript = Callable[[TranscriptSegment], None]
OnStreamError = Callable[[BaseException], None]

_PARTICIPANTS = ("medico", "paciente")
_SUPERSEDE_WAIT_SEC = 5.0


def normalize_participant(participant: Any) -> Optional[str]:
    return participant if participant in _PARTICIPANTS else None


class TranscriptionStreamHandle:
    def __init__(self, room_id: str, participant: Optional[str]) -> None:
        self.room_id = room_id
        self.participant = participant
        self.audio = AudioChunkChannel()
        self.cancelled = False
        self.task: Optional[asyncio.Task] = None

    def stop(self) -> None:
        self.cancelled = True
        self.audio.close()


class TranscriptionStreamManager:
    def __init__(
        self,
        provider_factory: Callable[[], TranscriptionProvider],
        *,
        sample_rate_hz: int = 16000,
        language_code: str = "es-ES",
    ) -> None:
        self._provider_factory = provider_factory
        self._sample_rate_hz = sample_rate_hz
        self._language_code = language_code
        self._streams: Dict[Hashable, TranscriptionStreamHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    def is_streaming(self, channel: Hashable) -> bool:
        return channel in self._streams

    def active_count(self) -> int:
        return len(self._streams)

    def start(
        self,
        channel: Hashable,
        room_id: str,
        participant: Any,
        *,
        on_result: OnTranscript,
        on_error: OnStreamError,
    ) -> Optional[TranscriptionStreamHandle]:
        """Start (or restart) the stream for ``channel``.

        Provider construction failures are reported through ``on_error`` and leave the
        channel idle.
        """
        previous = self._streams.pop(channel, None)
        if previous is not None:
            previous.stop()
            logger.info("transcribe_stream_superseded room_id=%s", previous.room_id)

        try:
            provider = self._provider_factory()
        except Exception as exc:
            logger.warning("transcribe_provider_unavailable room_id=%s error=%s", room_id, exc)
            on_error(exc)
            return None

        handle = TranscriptionStreamHandle(room_id, normalize_participant(participant))
        previous_task = previous.task if previous is not None else None
        handle.task = asyncio.create_task(
            self._receive_loop(channel, provider, handle, previous_task, on_result, on_error)
        )
        self._tasks.add(handle.task)
        handle.task.add_done_callback(self._tasks.discard)
        self._streams[channel] = handle
        logger.info(
            "transcribe_stream_started room_id=%s participant=%s provider=%s",
            room_id,
            handle.participant,
            provider.name(),
        )
        return handle

    async def push_chunk(self, channel: Hashable, data: bytes) -> None:
        handle = self._streams.get(channel)
        if handle is None or handle.cancelled:
            return
        await handle.audio.push(data)

    def stop(self, channel: Hashable) -> bool:
        handle = self._streams.pop(channel, None)
        if handle is None:
            return False
        handle.stop()
        logger.info("transcribe_stream_stopped room_id=%s", handle.room_id)
        return True

    async def shutdown(self) -> None:
        for channel in list(self._streams):
            self.stop(channel)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _await_previous(self, previous_task: Optional[asyncio.Task]) -> None:
        if previous_task is None or previous_task.done():
            return
        done, _ = await asyncio.wait({previous_task}, timeout=_SUPERSEDE_WAIT_SEC)
        if not done:
            previous_task.cancel()
            await asyncio.wait({previous_task})

    async def _receive_loop(
        self,
        channel: Hashable,
        provider: TranscriptionProvider,
        handle: TranscriptionStreamHandle,
        previous_task: Optional[asyncio.Task],
        on_result: OnTranscript,
        on_error: OnStreamError,
    ) -> None:
        results = None
        delivered = 0
        try:
            await self._await_previous(previous_task)
            if handle.cancelled:
                return
            results = provider.open_stream(
                handle.audio.chunks(),
                sample_rate_hz=self._sample_rate_hz,
                language_code=self._language_code,
            )
            async for result in results:
                if handle.cancelled:
                    break
                text = (result.text or "").strip()
                if not text:
                    continue
                on_result(
                    TranscriptSegment(
                        text=text,
                        is_partial=result.is_partial,
                        participant=handle.participant,
                    )
                )
                delivered += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not handle.cancelled:
                logger.warning(
                    "transcribe_stream_failed room_id=%s provider=%s error=%s",
                    handle.room_id,
                    provider.name(),
                    exc,
                )
                on_error(exc)
        finally:
            # Close the provider first so a pending end-of-stream can still drain the audio.
            try:
                if results is not None:
                    await results.aclose()
            finally:
                handle.audio.abandon()
            if self._streams.get(channel) is handle:
                del self._streams[channel]
            logger.info(
                "transcribe_stream_closed room_id=%s results=%s cancelled=%s",
                handle.room_id,
                delivered,
                handle.cancelled,
            )
