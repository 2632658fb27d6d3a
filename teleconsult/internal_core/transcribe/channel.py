from __future__ import annotations

"""
Single-slot rendezvous between the network (push) and a streaming client (pull).

Design intent:
- At most one chunk in flight; a producer awaiting ``push`` is throttled to the consumer's pace.
- Receipt order is delivery order.
- ``None`` or ``close()`` ends the consumer's sequence normally.
"""

import asyncio
from typing import AsyncIterator, Optional


class AudioChunkChannel:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def push(self, chunk: Optional[bytes]) -> None:
        if self._closed:
            return
        if chunk is None:
            self.close()
            return
        await self._queue.put(bytes(chunk))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Slot holds a chunk; the consumer sees the closed flag once it is drained.
            pass

    def abandon(self) -> None:
        """Consumer is gone: refuse further pushes and release a blocked producer."""
        self._closed = True
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            if chunk:
                yield chunk
            if self._closed and self._queue.empty():
                return
