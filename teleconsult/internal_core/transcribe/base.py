from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterator


class TranscriptionProviderError(RuntimeError):
    def __init__(self, code: str, message: str, provider_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name


@dataclass(frozen=True)
class TranscriptResult:
    text: str
    is_partial: bool


class TranscriptionProvider(ABC):
    """Streaming speech-to-text provider.

    ``open_stream`` pulls audio from ``audio_chunks`` until it is exhausted (end of
    stream) and yields recognised results lazily. Exhaustion of the audio sequence
    ends the result sequence normally.
    """

    @abstractmethod
    def open_stream(
        self,
        audio_chunks: AsyncIterator[bytes],
        *,
        sample_rate_hz: int,
        language_code: str,
    ) -> AsyncGenerator[TranscriptResult, None]: ...

    @abstractmethod
    def name(self) -> str: ...
