from __future__ import annotations

import asyncio
import logging
from typing import Optional

from starlette import status
from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)

_CLOSE = object()

_OUTBOX_LIMIT = 256


class WebSocketChannel:
    """Outbound side of one participant connection.

    ``send`` only enqueues; a single writer task drains the outbox in order, so a slow
    socket never blocks a room broadcast. A socket that falls ``max_pending`` messages
    behind is closed instead of buffering without limit.
    """

    def __init__(self, websocket: WebSocket, max_pending: int = _OUTBOX_LIMIT) -> None:
        self._websocket = websocket
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._open = True
        self._writer: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._open and self._websocket.client_state == WebSocketState.CONNECTED

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._drain())

    def send(self, text: str) -> None:
        if not self._open:
            return
        try:
            self._outbox.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning("ws_outbox_overflow pending=%s", self._outbox.qsize())
            self._abort()

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        try:
            self._outbox.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            self._stop_writer()

    async def aclose(self) -> None:
        self.close()
        pending = {task for task in (self._writer, self._closer) if task is not None}
        if pending:
            await asyncio.wait(pending)

    def _abort(self) -> None:
        self._open = False
        self._stop_writer()
        self._closer = asyncio.create_task(self._close_socket())

    def _stop_writer(self) -> None:
        if self._writer is not None:
            self._writer.cancel()
        while not self._outbox.empty():
            self._outbox.get_nowait()

    async def _close_socket(self) -> None:
        try:
            await self._websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        except Exception as exc:
            logger.info("ws_close_failed error=%s", exc)

    async def _drain(self) -> None:
        while True:
            item = await self._outbox.get()
            if item is _CLOSE:
                return
            try:
                await self._websocket.send_text(item)
            except Exception as exc:
                logger.info("ws_send_failed error=%s", exc)
                self._open = False
                return
