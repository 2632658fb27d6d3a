from __future__ import annotations

from .aws_transcribe import AwsTranscribeStreamingProvider
from .base import TranscriptionProvider, TranscriptionProviderError
from .mock import MockTranscriptionProvider

_ALIASES = {
    "aws": "aws",
    "aws_transcribe": "aws",
    "amazon": "aws",
    "amazon_transcribe": "aws",
    "mock": "mock",
    "local": "mock",
}


def normalize_provider_name(name: str | None) -> str:
    key = (name or "aws").strip().lower().replace("-", "_")
    resolved = _ALIASES.get(key)
    if resolved is None:
        raise TranscriptionProviderError(
            "UNKNOWN_PROVIDER",
            f"Unknown transcription provider '{name}'. Expected one of: {', '.join(sorted(_ALIASES))}",
            key,
        )
    return resolved


def create_provider(name: str | None, *, region: str) -> TranscriptionProvider:
    resolved = normalize_provider_name(name)
    if resolved == "mock":
        return MockTranscriptionProvider()
    return AwsTranscribeStreamingProvider(region=region)
