from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Optional

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.model import TranscriptEvent

from .base import TranscriptionProvider, TranscriptResult

logger = logging.getLogger(__name__)

_END_STREAM_WAIT_SEC = 5.0

_OUTPUT_END = object()


def _result_text(result: Any) -> str:
    alternatives = getattr(result, "alternatives", None) or []
    if not alternatives:
        return ""
    first = alternatives[0]
    text = getattr(first, "transcript", None)
    if text:
        return str(text).strip()
    items = getattr(first, "items", None) or []
    return " ".join(str(getattr(item, "content", "") or "") for item in items).strip()


async def _next_event(events: AsyncIterator[Any]) -> Any:
    try:
        return await events.__anext__()
    except StopAsyncIteration:
        return _OUTPUT_END


def _raise_pump_failure(pump: asyncio.Task) -> None:
    if pump.done() and not pump.cancelled():
        exc = pump.exception()
        if exc is not None:
            raise exc


class AwsTranscribeStreamingProvider(TranscriptionProvider):
    """Amazon Transcribe streaming, PCM 16-bit little-endian mono.

    Audio is sent by a pump task while results are read here. A failing pump ends the
    result sequence with its exception. Closing the sequence early still lets the pump
    deliver ``end_stream()`` (bounded by ``_END_STREAM_WAIT_SEC``).
    """

    def __init__(self, region: str) -> None:
        self._region = region

    async def open_stream(
        self,
        audio_chunks: AsyncIterator[bytes],
        *,
        sample_rate_hz: int,
        language_code: str,
    ) -> AsyncGenerator[TranscriptResult, None]:
        client = TranscribeStreamingClient(region=self._region)
        stream = await client.start_stream_transcription(
            language_code=language_code,
            media_sample_rate_hz=sample_rate_hz,
            media_encoding="pcm",
        )
        logger.info(
            "transcribe_stream_opened region=%s language=%s sample_rate_hz=%s",
            self._region,
            language_code,
            sample_rate_hz,
        )
        pump = asyncio.create_task(self._pump_audio(stream, audio_chunks))
        events = stream.output_stream.__aiter__()
        pending: Optional[asyncio.Task] = None
        closing = False
        try:
            while True:
                if pending is None:
                    pending = asyncio.create_task(_next_event(events))
                waiting = {pending} if pump.done() else {pending, pump}
                await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
                _raise_pump_failure(pump)
                if not pending.done():
                    continue
                event = pending.result()
                pending = None
                if event is _OUTPUT_END:
                    break
                if not isinstance(event, TranscriptEvent):
                    continue
                for result in event.transcript.results or []:
                    text = _result_text(result)
                    if text:
                        yield TranscriptResult(text=text, is_partial=bool(result.is_partial))
        except (GeneratorExit, asyncio.CancelledError):
            # Closed by the consumer: the pump may still be sending end_stream().
            closing = True
            raise
        finally:
            if pending is not None and not pending.done():
                pending.cancel()
            await self._finish_pump(pump, wait=closing)

    async def _pump_audio(self, stream: Any, audio_chunks: AsyncIterator[bytes]) -> None:
        sent = 0
        async for chunk in audio_chunks:
            await stream.input_stream.send_audio_event(audio_chunk=chunk)
            sent += 1
        await stream.input_stream.end_stream()
        logger.debug("transcribe_audio_ended chunks=%s", sent)

    async def _finish_pump(self, pump: asyncio.Task, *, wait: bool) -> None:
        if not pump.done() and wait:
            await asyncio.wait({pump}, timeout=_END_STREAM_WAIT_SEC)
        if not pump.done():
            logger.warning("transcribe_audio_pump_cancelled region=%s", self._region)
            pump.cancel()
            await asyncio.wait({pump})
            return
        if not pump.cancelled() and pump.exception() is not None:
            logger.debug("transcribe_audio_pump_failed error=%s", pump.exception())

    def name(self) -> str:
        return "aws"
