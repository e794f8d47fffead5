"""
In-process event fan-out for WireKVS SDK.

This module provides the broadcaster that sits between the realtime
event socket and user code:
- EventHub: Bounded single-writer, multi-reader broadcast buffer
- Subscription: One consumer's independent receive view

Example:
    >>> hub = EventHub(capacity=100)
    >>> sub = hub.subscribe()
    >>> hub.publish({"type": "set", "key": "greeting", "value": "Hello"})
    1
    >>> await sub.recv()
    {'type': 'set', 'key': 'greeting', 'value': 'Hello'}

Invariants:
    - Every subscriber observes events in the single publish order
    - Every receive returns a private copy of the event
    - A subscriber only sees events published after it subscribed
    - publish() never blocks; memory is bounded by capacity
    - A subscriber that falls more than capacity events behind is told
      how many it missed (LaggedError) instead of silently skipping
    - Closing the hub wakes every waiting receiver with HubClosedError

Thread safety:
    Bound to a single asyncio event loop. publish() and recv() must be
    called from the loop that runs the owning database handle.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import weakref
from collections import deque
from typing import Any, Dict, List, Union

from .errors import HubClosedError, LaggedError

logger = logging.getLogger(__name__)

JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]


class EventHub:
    """Bounded broadcast buffer for decoded events.

    Events live in a ring of ``capacity`` slots addressed by a global
    sequence number. Subscriptions hold their own read position, so the
    hub keeps no per-subscriber queues and publishing is O(1) regardless
    of how many consumers are attached.

    Attributes:
        capacity: Maximum number of events retained for slow readers
    """

    def __init__(self, capacity: int = 100) -> None:
        """Initialize an empty hub.

        Args:
            capacity: Ring size; must be at least 1
        """
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._buffer: deque[JsonValue] = deque(maxlen=capacity)
        self._next_seq = 0
        self._closed = False
        self._wakeup = asyncio.Event()
        self._receivers: weakref.WeakSet[Subscription] = weakref.WeakSet()

    @property
    def closed(self) -> bool:
        """Whether the hub has been closed."""
        return self._closed

    @property
    def receiver_count(self) -> int:
        """Number of live subscriptions."""
        return len(self._receivers)

    @property
    def _oldest_seq(self) -> int:
        return self._next_seq - len(self._buffer)

    def publish(self, event: JsonValue) -> int:
        """Broadcast an event to all current subscribers.

        Args:
            event: Decoded event document

        Returns:
            Number of subscriptions attached at publish time

        Raises:
            HubClosedError: If the hub has been closed
        """
        if self._closed:
            raise HubClosedError()

        self._buffer.append(event)
        self._next_seq += 1
        self._notify()
        return len(self._receivers)

    def subscribe(self) -> Subscription:
        """Attach a new receive view at the current publish position.

        Raises:
            HubClosedError: If the hub has been closed
        """
        if self._closed:
            raise HubClosedError()

        subscription = Subscription(self, self._next_seq)
        self._receivers.add(subscription)
        logger.debug(f"Subscription attached at position {self._next_seq}")
        return subscription

    def close(self) -> None:
        """Close the hub and wake all waiting receivers. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._notify()
        logger.debug(
            "Event hub closed",
            extra={"published": self._next_seq, "receivers": len(self._receivers)},
        )

    def _notify(self) -> None:
        # Swap before setting so receivers that wake up wait on a fresh event
        wakeup, self._wakeup = self._wakeup, asyncio.Event()
        wakeup.set()

    def _detach(self, subscription: Subscription) -> None:
        self._receivers.discard(subscription)


class Subscription:
    """A consumer's receive view into an EventHub.

    Only a weak reference to the hub is held: a subscription never keeps
    its hub alive and never affects other subscriptions.

    Example:
        >>> sub = db.subscribe()
        >>> async for event in sub:
        ...     print(event)
    """

    def __init__(self, hub: EventHub, position: int) -> None:
        self._hub_ref = weakref.ref(hub)
        self._position = position
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether this subscription or its hub is closed."""
        hub = self._hub_ref()
        return self._closed or hub is None or hub.closed

    @property
    def pending(self) -> int:
        """Number of buffered events not yet received (0 once closed)."""
        hub = self._hub_ref()
        if self._closed or hub is None or hub.closed:
            return 0
        return hub._next_seq - max(self._position, hub._oldest_seq)

    def _live_hub(self) -> EventHub:
        hub = self._hub_ref()
        if self._closed or hub is None or hub.closed:
            raise HubClosedError()
        return hub

    async def recv(self) -> JsonValue:
        """Wait for the next event.

        Returns:
            The next event in publish order

        Raises:
            LaggedError: Events were dropped before this subscriber read
                them; the next call resumes at the oldest buffered event
            HubClosedError: The hub (or this subscription) was closed
        """
        while True:
            hub = self._live_hub()
            oldest = hub._oldest_seq
            if self._position < oldest:
                missed = oldest - self._position
                self._position = oldest
                raise LaggedError(missed)

            if self._position < hub._next_seq:
                event = hub._buffer[self._position - oldest]
                self._position += 1
                # Each receiver gets its own document
                return copy.deepcopy(event)

            wakeup = hub._wakeup
            await wakeup.wait()

    def close(self) -> None:
        """Detach from the hub. Idempotent."""
        if self._closed:
            return
        self._closed = True
        hub = self._hub_ref()
        if hub is not None:
            hub._detach(self)
            # Wake a recv() that may be parked on this subscription
            hub._notify()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> JsonValue:
        while True:
            try:
                return await self.recv()
            except LaggedError as e:
                logger.warning(f"Subscriber skipped {e.missed} events after lagging")
            except HubClosedError:
                raise StopAsyncIteration from None
