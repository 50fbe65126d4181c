"""
Server-sent event channel for caller-initiated task runs.

The executor pushes events while it works; the HTTP handler drains the
stream into a StreamingResponse. The channel emits exactly one terminal
event (done or error) and closes once, however many error paths fire.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_CLOSED = object()


def format_sse(event: str, data: Dict[str, Any]) -> str:
    """Encode one named event block"""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False, default=str)}\n\n"


class EventStream:
    """
    Single-consumer event channel.

    Producers call progress()/done()/error(); the consumer iterates the
    stream to get encoded SSE frames. Anything sent after the terminal
    event is dropped.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _send(self, event: str, data: Dict[str, Any]) -> bool:
        if self._closed:
            logger.debug(f"Dropped '{event}' event on closed stream")
            return False
        self._queue.put_nowait(format_sse(event, data))
        return True

    def progress(self, percent: Optional[float] = None, text: Optional[str] = None) -> bool:
        data: Dict[str, Any] = {}
        if percent is not None:
            data["progress"] = percent
        if text is not None:
            data["text"] = text
        return self._send("progress", data)

    def done(self, payload: Dict[str, Any]) -> bool:
        sent = self._send("done", payload)
        self.close()
        return sent

    def error(self, message: str) -> bool:
        sent = self._send("error", {"error": message})
        self.close()
        return sent

    def close(self) -> None:
        """Idempotent; ends iteration after already queued frames"""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
