"""
Cross-context message channel between the capture agent and the controller.

Messages are plain dictionaries of the form ``{"type": ..., "data": {...}}``
so the two sides share no mutable state; delivery is asynchronous and FIFO.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .models import MessageType

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
MessageHandler = Callable[[Message], Optional[Awaitable[None]]]


class MessageChannel:
    """Asynchronous, queue-backed channel with a single consumer."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.posted = 0
        self.dropped = 0

    def post(self, message_type: MessageType, data: Dict[str, Any]) -> bool:
        """
        Post a serialized record onto the channel.

        Returns:
            False when the channel is full and the message was dropped
        """
        try:
            self._queue.put_nowait({"type": message_type.value, "data": data})
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Message channel full, dropping message",
                extra={"metadata": {"type": message_type.value}},
            )
            return False
        self.posted += 1
        return True

    @property
    def pending(self) -> int:
        """Number of messages not yet consumed."""
        return self._queue.qsize()

    async def consume(self, handler: MessageHandler) -> None:
        """
        Deliver messages to ``handler`` in arrival order until cancelled.

        Handler errors are logged and the message is skipped.
        """
        while True:
            message = await self._queue.get()
            try:
                result = handler(message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Message handler failed: {e}",
                    extra={"metadata": {"type": message.get("type")}},
                )
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every posted message has been handled."""
        await self._queue.join()
