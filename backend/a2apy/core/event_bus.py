"""
Execution Event Bus for a2apy
The per-task publishing handle the executor writes to. ``EventBus`` is the
contract an A2A request handler supplies; ``InMemoryEventBus`` is a
queue-backed implementation for embedding the executor in-process.
"""

import asyncio
import logging
from typing import Any, AsyncGenerator, List, Optional, Protocol

logger = logging.getLogger(__name__)


class EventBus(Protocol):
    """Publishing handle for one task execution"""

    def publish(self, event: Any) -> None:
        ...

    def finished(self) -> None:
        ...


class InMemoryEventBus:
    """
    Collects published events in order and exposes them as an async stream.
    ``finished()`` closes the stream; publishing after that is logged and dropped.
    """

    def __init__(self, task_id: Optional[str] = None):
        self.task_id = task_id
        self.events: List[Any] = []
        self.finish_count = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = asyncio.Event()

    @property
    def is_finished(self) -> bool:
        return self._closed.is_set()

    def publish(self, event: Any) -> None:
        if self.is_finished:
            logger.warning(f"Dropping event published after finish for task {self.task_id}: {getattr(event, 'kind', type(event).__name__)}")
            return
        self.events.append(event)
        self._queue.put_nowait(event)

    def finished(self) -> None:
        self.finish_count += 1
        if self.is_finished:
            return
        self._closed.set()
        self._queue.put_nowait(None)

    async def wait_finished(self, timeout: Optional[float] = None) -> None:
        await asyncio.wait_for(self._closed.wait(), timeout=timeout)

    async def stream(self) -> AsyncGenerator[Any, None]:
        """Yield events as they are published until the bus is finished"""
        while True:
            item = await self._queue.get()
            if item is None:
                break
            yield item
