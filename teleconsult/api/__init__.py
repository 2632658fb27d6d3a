"""
API boundary for the teleconsult backend.

Design intent:
- Expose the participant WebSocket and the thin HTTP side-channel routes.
- Keep routing thin; room/stream/agent logic lives in the coordinator.
"""

