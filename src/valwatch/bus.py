"""Bounded multi-subscriber broadcast of log events.

Every subscriber gets its own bounded buffer. publish() never waits on a
subscriber: when a buffer is full the subscriber's OLDEST buffered event is
discarded to make room for the new one, so a slow reader always sees the
most recent events and the publisher never stalls.
"""

import logging
import threading
from collections import deque
from typing import Iterator, Optional

from valwatch.events import LogEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 64


class Subscription:
    """One consumer's view of the broadcast stream.

    Created by EventBus.subscribe(). Starts empty; only events published
    after creation are delivered. Close it (or use it as a context manager)
    when the consumer goes away.

    Example:
        with bus.subscribe() as sub:
            for event in sub:
                print(event.to_dict())
    """

    def __init__(self, bus: "EventBus", capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._bus = bus
        self._capacity = capacity
        self._buffer: deque[LogEvent] = deque(maxlen=capacity)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped: int = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._buffer)

    def _offer(self, event: LogEvent) -> bool:
        """Buffer an event without blocking. Returns False once closed."""
        with self._cond:
            if self._closed:
                return False
            if len(self._buffer) == self._capacity:
                self.dropped += 1
            self._buffer.append(event)
            self._cond.notify()
            return True

    def get(self, timeout: Optional[float] = None) -> Optional[LogEvent]:
        """Wait for the next event.

        Returns None on timeout, or once the subscription is closed and
        its buffer is empty.
        """
        with self._cond:
            if not self._buffer and not self._closed:
                self._cond.wait_for(lambda: self._buffer or self._closed, timeout=timeout)
            if self._buffer:
                return self._buffer.popleft()
            return None

    def drain(self) -> list[LogEvent]:
        """Take every buffered event without waiting."""
        with self._cond:
            events = list(self._buffer)
            self._buffer.clear()
            return events

    def close(self) -> None:
        """Detach from the bus and release the buffer. Safe to call twice."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._buffer.clear()
            self._cond.notify_all()
        self._bus._remove(self)

    def __iter__(self) -> Iterator[LogEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class EventBus:
    """Fan-out channel from the log tailer to any number of subscribers."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize the bus.

        Args:
            capacity: Default per-subscriber buffer size.
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, capacity: Optional[int] = None) -> Subscription:
        """Register a new subscriber with an empty buffer."""
        sub = Subscription(self, capacity if capacity is not None else self._capacity)
        with self._lock:
            if self._closed:
                sub._closed = True
                return sub
            self._subscribers.append(sub)
            count = len(self._subscribers)
        logger.debug(f"Subscriber added ({count} total)")
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.close()

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)
                logger.debug(f"Subscriber removed ({len(self._subscribers)} remaining)")

    def publish(self, event: LogEvent) -> int:
        """Deliver an event to every active subscriber.

        Returns:
            Number of subscribers the event was delivered to.
        """
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        for sub in targets:
            if sub._offer(event):
                delivered += 1
        return delivered

    def close(self) -> None:
        """Close every subscription; later subscribers start closed."""
        with self._lock:
            self._closed = True
            targets = list(self._subscribers)
        for sub in targets:
            sub.close()
        logger.debug("Event bus closed")
