from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _getenv_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class AppConfig:
    AWS_REGION: str
    BEDROCK_AGENT_ID: str
    BEDROCK_AGENT_ALIAS_ID: str
    TRANSCRIBE_PROVIDER: str
    TRANSCRIBE_SAMPLE_RATE_HZ: int
    TRANSCRIBE_LANGUAGE_CODE: str
    DEFAULT_ROOM_ID: str
    DEFAULT_PATIENT_ID: str
    TELECONSULT_LOG_LEVEL: str
    HOST: str
    PORT: int
    CORS_ALLOW_ORIGINS: tuple[str, ...]

    @property
    def agent_configured(self) -> bool:
        return bool(self.BEDROCK_AGENT_ID.strip())


def load_config() -> AppConfig:
    return AppConfig(
        AWS_REGION=_getenv_str("AWS_REGION", "us-east-1"),
        BEDROCK_AGENT_ID=_getenv_str("BEDROCK_AGENT_ID", ""),
        BEDROCK_AGENT_ALIAS_ID=_getenv_str("BEDROCK_AGENT_ALIAS_ID", "TSTALIASID"),
        TRANSCRIBE_PROVIDER=_getenv_str("TRANSCRIBE_PROVIDER", "aws"),
        TRANSCRIBE_SAMPLE_RATE_HZ=_getenv_int("TRANSCRIBE_SAMPLE_RATE_HZ", 16000),
        TRANSCRIBE_LANGUAGE_CODE=_getenv_str("TRANSCRIBE_LANGUAGE_CODE", "es-ES"),
        DEFAULT_ROOM_ID=_getenv_str("DEFAULT_ROOM_ID", "default"),
        DEFAULT_PATIENT_ID=_getenv_str("DEFAULT_PATIENT_ID", "1"),
        TELECONSULT_LOG_LEVEL=_getenv_str("TELECONSULT_LOG_LEVEL", "INFO"),
        HOST=_getenv_str("HOST", "0.0.0.0"),
        PORT=_getenv_int("PORT", 4000),
        CORS_ALLOW_ORIGINS=tuple(_getenv_list("CORS_ALLOW_ORIGINS", ["*"])),
    )
