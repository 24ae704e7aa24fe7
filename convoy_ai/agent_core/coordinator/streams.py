"""Per-conversation event buffer with replay-then-live subscriptions."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, AsyncIterator, Deque, Optional, Set

_CLOSED = None


class ConversationEventStream:
    """Bounded buffer of one run's events plus the queues of live subscribers.

    ``subscribe`` snapshots the buffer and registers its queue without yielding
    to the event loop in between, so a subscriber sees every event exactly once.
    """

    def __init__(self, max_events: int = 1000) -> None:
        self._buffer: Deque[Any] = deque(maxlen=max_events)
        self._subscribers: Set["asyncio.Queue[Any]"] = set()
        self.closed = False
        self.expiry: Optional[asyncio.TimerHandle] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: Any) -> None:
        self._buffer.append(event)
        for queue in self._subscribers:
            queue.put_nowait(event)

    def close(self) -> None:
        self.closed = True
        for queue in self._subscribers:
            queue.put_nowait(_CLOSED)

    def cancel_expiry(self) -> None:
        if self.expiry is not None:
            self.expiry.cancel()
            self.expiry = None

    async def subscribe(self) -> AsyncIterator[Any]:
        queue: "asyncio.Queue[Any]" = asyncio.Queue()
        replay = list(self._buffer)
        live = not self.closed
        if live:
            self._subscribers.add(queue)
        try:
            for event in replay:
                yield event
            if not live:
                return
            while True:
                event = await queue.get()
                if event is _CLOSED:
                    return
                yield event
        finally:
            self._subscribers.discard(queue)
