"""
Teleconsult backend package.

Design intent:
- Coordinate live video-consultation rooms: transcription, agent proposals, section actions.
- Keep AWS collaborators (Chime, Transcribe, Bedrock agent) behind small adapters.
"""

