from __future__ import annotations

from .aws_transcribe import AwsTranscribeStreamingProvider
from .base import TranscriptionProvider, TranscriptionProviderError, TranscriptResult
from .channel import AudioChunkChannel
from .factory import create_provider, normalize_provider_name
from .mock import MockTranscriptionProvider
from .stream_manager import TranscriptionStreamHandle, TranscriptionStreamManager

__all__ = [
    "AudioChunkChannel",
    "AwsTranscribeStreamingProvider",
    "MockTranscriptionProvider",
    "TranscriptResult",
    "TranscriptionProvider",
    "TranscriptionProviderError",
    "TranscriptionStreamHandle",
    "TranscriptionStreamManager",
    "create_provider",
    "normalize_provider_name",
]
