from __future__ import annotations

from typing import AsyncGenerator, AsyncIterator

from .base import TranscriptionProvider, TranscriptResult


class MockTranscriptionProvider(TranscriptionProvider):
    """Emits one partial per audio chunk and a final result at end of stream."""

    async def open_stream(
        self,
        audio_chunks: AsyncIterator[bytes],
        *,
        sample_rate_hz: int,
        language_code: str,
    ) -> AsyncGenerator[TranscriptResult, None]:
        received = 0
        async for chunk in audio_chunks:
            received += 1
            yield TranscriptResult(
                text=f"(mock) fragmento {received} ({len(chunk)} bytes)",
                is_partial=True,
            )
        if received:
            yield TranscriptResult(
                text=f"(mock) transcripción simulada de {received} fragmentos.",
                is_partial=False,
            )

    def name(self) -> str:
        return "mock"
