"""Streaming plumbing: a bounded event channel and a single-shot result future."""

import asyncio
import logging
from typing import Any, Generic, Optional, TypeVar

from toolloop.agent.models import AgentResult, AgentStreamEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class ChannelClosedError(Exception):
    """Raised when sending on a closed channel."""

    pass


class EventChannel(Generic[T]):
    """Bounded async channel with backpressure.

    ``send`` suspends while the channel is full, so a producer can never
    run more than ``capacity`` items ahead of its consumer. Iterating the
    channel yields items in send order until it is closed and drained.
    """

    def __init__(self, capacity: int = 1):
        if capacity < 1:
            raise ValueError("Channel capacity must be at least 1")
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T) -> None:
        """Send an item, waiting for room.

        Raises:
            ChannelClosedError: If the channel was closed
        """
        if self._closed:
            raise ChannelClosedError("Cannot send on a closed channel")
        await self._queue.put(item)

    def close(self) -> None:
        """Close the channel. Items already sent remain readable."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # The reader is not blocked on an empty queue; it sees the
            # closed flag once it drains what is buffered.
            pass

    def __aiter__(self) -> "EventChannel[T]":
        return self

    async def __anext__(self) -> T:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class ResultFuture(Generic[T]):
    """Awaitable that is settled exactly once.

    Later resolve/reject calls are ignored and report False. Awaiting it
    more than once returns the same value or raises the same exception.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._settled = False
        # Mark the exception as retrieved; awaiting callers still receive it
        self._future.add_done_callback(lambda f: f.cancelled() or f.exception())

    @property
    def settled(self) -> bool:
        return self._settled

    def resolve(self, value: T) -> bool:
        if self._settled:
            logger.debug("Ignoring resolve on an already settled result")
            return False
        self._settled = True
        self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self._settled:
            logger.debug(f"Ignoring reject on an already settled result: {error!r}")
            return False
        self._settled = True
        self._future.set_exception(error)
        return True

    def cancel(self) -> bool:
        """Settle as cancelled; awaiting raises asyncio.CancelledError."""
        if self._settled:
            return False
        self._settled = True
        self._future.cancel()
        return True

    def __await__(self):
        return asyncio.shield(self._future).__await__()


class AgentStream:
    """Handle of a streaming agent run.

    Iterate it for AgentStreamEvents in causal order; await ``result``
    for the final AgentResult. The run only advances while events are
    consumed, so callers that just want the result should use ``collect``.
    """

    def __init__(
        self,
        channel: EventChannel[AgentStreamEvent],
        result: ResultFuture[AgentResult],
        task: "asyncio.Task[None]",
    ):
        self._channel = channel
        self._result = result
        self._task = task

    @property
    def result(self) -> ResultFuture[AgentResult]:
        """Single-shot future resolved with the same result the ``done`` event carries."""
        return self._result

    def __aiter__(self) -> "AgentStream":
        return self

    async def __anext__(self) -> AgentStreamEvent:
        return await self._channel.__anext__()

    async def collect(self) -> AgentResult:
        """Drain all events and return the final result.

        Raises:
            Exception: The failure that ended the run, if any
        """
        async for _ in self:
            pass
        return await self._result

    async def aclose(self) -> None:
        """Cancel the run if it is still in progress."""
        if not self._task.done():
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._result.cancel()

    async def __aenter__(self) -> "AgentStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> Optional[bool]:
        await self.aclose()
        return None
