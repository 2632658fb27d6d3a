from __future__ import annotations

"""
boto3 client construction shared by the Chime and Bedrock agent adapters.

Design intent:
- One place for region + adaptive retry settings.
- Fall back to the default AWS credential chain (env vars, profiles, instance roles).
"""

from typing import Any, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

_BOTO_MAX_ATTEMPTS = 4


def create_client(service_name: str, region: str) -> Any:
    return boto3.client(
        service_name,
        region_name=region,
        config=BotoConfig(retries={"mode": "adaptive", "max_attempts": _BOTO_MAX_ATTEMPTS}),
    )


def error_details(exc: BaseException) -> Tuple[Optional[str], Optional[int]]:
    """Return ``(error_code, http_status)`` from a botocore error, if present."""
    code: Optional[str] = None
    status: Optional[int] = None
    response = exc.response if isinstance(exc, ClientError) else getattr(exc, "response", None)
    if isinstance(response, dict):
        code = (response.get("Error") or {}).get("Code")
        status = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    return code, status
