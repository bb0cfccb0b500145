"""Server-sent event channel between a chat turn and the widget."""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from typing import Any

from shopchat.core.exceptions import (
    LLMAuthenticationError,
    LLMRateLimitError,
    LLMTimeoutError,
    ToolLoopLimitExceeded,
)

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Handler tasks outlive a disconnected client so the turn can finish persisting.
_background_tasks: set[asyncio.Task[None]] = set()


def format_event(event: dict[str, Any]) -> str:
    """Encode one event as an SSE ``data:`` frame."""
    return f"data: {json.dumps(event)}\n\n"


class StreamPublisher:
    """Single-writer event channel.

    Events are queued in emission order and drained by the response body.
    ``close`` ends the stream and may be called any number of times. Once the
    client has gone away, ``send`` silently drops events.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self._disconnected = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: dict[str, Any]) -> None:
        if self._closed or self._disconnected:
            return
        await self._queue.put(format_event(event))

    async def send_error(self, type_: str, error: str, details: str) -> None:
        await self.send({"type": type_, "error": error, "details": details})

    async def handle_streaming_error(self, exc: BaseException) -> None:
        """Translate a turn-ending exception into exactly one client event."""
        logger.error("Error processing streaming request: %s", exc, exc_info=exc)

        message = str(exc)
        lowered = message.lower()
        status_code = getattr(exc, "status_code", None)

        if isinstance(exc, LLMRateLimitError) or status_code in (429, 529) or "overloaded" in lowered:
            await self.send_error(
                "rate_limit_exceeded", "Rate limit exceeded", "Please try again later"
            )
        elif isinstance(exc, LLMAuthenticationError) or status_code == 401:
            await self.send_error(
                "error",
                "Authentication failed with the LLM API",
                "Please check your API key in environment variables",
            )
        elif isinstance(exc, ToolLoopLimitExceeded):
            await self.send_error("error", "Tool loop limit exceeded", message)
        elif isinstance(exc, LLMTimeoutError):
            await self.send_error("error", "The assistant took too long to respond", message)
        elif "auth" in lowered or "key" in lowered:
            await self.send_error(
                "error",
                "Authentication failed with the LLM API",
                "Please check your API key in environment variables",
            )
        else:
            await self.send_error("error", "Failed to get response from the assistant", message)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def disconnect(self) -> None:
        """Mark the client as gone; later events are dropped."""
        self._disconnected = True

    async def frames(self) -> AsyncIterator[str]:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


def create_sse_stream(
    handler: Callable[[StreamPublisher], Awaitable[None]],
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> AsyncGenerator[str, None]:
    """Start ``handler`` in the background and return its events as SSE frames.

    The handler starts immediately, so ``on_close`` runs even if the response
    body is never iterated. Any exception escaping the handler becomes one
    error event. ``on_close`` runs once the handler is done, before the
    stream is closed.
    """
    publisher = StreamPublisher()

    async def run() -> None:
        try:
            await handler(publisher)
        except Exception as e:
            await publisher.handle_streaming_error(e)
        finally:
            try:
                if on_close is not None:
                    await on_close()
            except Exception:
                logger.exception("Stream close callback failed")
            finally:
                publisher.close()

    task = asyncio.create_task(run())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return _relay(publisher)


async def _relay(publisher: StreamPublisher) -> AsyncGenerator[str, None]:
    try:
        async for frame in publisher.frames():
            yield frame
    finally:
        publisher.disconnect()
