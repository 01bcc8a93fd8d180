"""
Streaming bridge between a turn and a chunked HTTP response.

The turn runs as its own task and writes into a QueueSink; the response
body drains the queue. Stopping the drain (client disconnect) cancels the
turn task.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, List

from llm.errors import ChatServiceError, TransportError

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_CLOSED = object()


class QueueSink:
    """Output sink that hands flushed chunks to the response body."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._buffer: List[str] = []
        self._closed = False
        self.opened = asyncio.Event()

    async def open(self) -> None:
        self.opened.set()

    async def write(self, fragment: str) -> None:
        if self._closed:
            raise TransportError("Response stream is closed")
        self._buffer.append(fragment)

    async def flush(self) -> None:
        if self._buffer:
            self._queue.put_nowait("".join(self._buffer))
            self._buffer.clear()

    async def close(self) -> None:
        if self._closed:
            return
        await self.flush()
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def disconnect(self) -> None:
        """Mark the client as gone; later writes fail with TransportError."""
        self._closed = True
        self._buffer.clear()

    async def drain(self, task: asyncio.Task) -> AsyncIterator[str]:
        """Yield chunks until the turn closes the sink."""
        try:
            while True:
                item = await self._queue.get()
                if item is _CLOSED:
                    break
                yield item
        finally:
            if not task.done():
                logger.info("Client stopped reading, cancelling turn")
                self.disconnect()
                task.cancel()


def start_turn(turn: Awaitable[Any]) -> asyncio.Task:
    """Run a turn in its own task so a client disconnect can cancel it."""
    task = asyncio.ensure_future(turn)
    task.add_done_callback(_log_unexpected_failure)
    return task


def _log_unexpected_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None and not isinstance(error, ChatServiceError):
        logger.error(f"Turn task failed: {error!r}")


async def wait_until_streaming(task: asyncio.Task, sink: QueueSink) -> None:
    """
    Wait until the turn opens the sink.

    Re-raises whatever the turn failed with before opening (validation or
    persistence errors), so the caller can still answer with a JSON error.
    """
    opened = asyncio.ensure_future(sink.opened.wait())
    try:
        await asyncio.wait({task, opened}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if not opened.done():
            opened.cancel()

    if sink.opened.is_set():
        return
    # Task finished before opening: surface its exception
    task.result()
    raise RuntimeError("Turn finished without opening the response stream")
