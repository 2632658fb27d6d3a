from .gateway import (
    AgentFailure,
    AgentInvocation,
    BedrockAgentGateway,
    classify_agent_error,
    fallback_payload,
)
from .parsing import extract_json_object, parse_agent_response
from .prompt import AgentRequest, build_prompt

__all__ = [
    "AgentFailure",
    "AgentInvocation",
    "AgentRequest",
    "BedrockAgentGateway",
    "build_prompt",
    "classify_agent_error",
    "extract_json_object",
    "fallback_payload",
    "parse_agent_response",
]
