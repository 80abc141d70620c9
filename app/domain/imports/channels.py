"""
Cancellation tokens and closable bounded channels for the import worker pool.

``queue.Queue`` cannot be waited on together with a cancellation signal, so
every blocking call here waits in short slices and re-checks the token between
slices. A run therefore notices its deadline within ``POLL_INTERVAL_SECONDS``.
"""
from __future__ import annotations

import queue
import threading
import time
from typing import Any, Optional

from .errors import ChannelClosedError, ImportCancelled

POLL_INTERVAL_SECONDS = 0.02

DEADLINE_EXCEEDED = "deadline exceeded"
CANCELLED = "cancelled"


class CancellationToken:
    """
    Run-scoped cancellation signal shared by the producer and every worker.

    A token fires when ``cancel()`` is called, when its monotonic deadline
    passes, or when its parent fires.
    """

    def __init__(self, deadline: Optional[float] = None, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._parent = parent
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float, parent: Optional["CancellationToken"] = None) -> "CancellationToken":
        deadline = time.monotonic() + seconds
        if parent is not None and parent.deadline is not None:
            deadline = min(deadline, parent.deadline)
        return cls(deadline=deadline, parent=parent)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return CANCELLED
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DEADLINE_EXCEEDED
        if self._parent is not None:
            return self._parent.reason
        return None

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        reason = self.reason
        if reason is not None:
            raise ImportCancelled(reason)


class BoundedChannel:
    """
    FIFO with a fixed capacity and an explicit close.

    Closing marks the end of the stream: receivers drain whatever is buffered
    and then get ``ChannelClosedError``. Only the single producing side may
    close, and only after its last send returned.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"channel capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def send(self, item: Any, token: Optional[CancellationToken] = None) -> None:
        """
        Enqueue ``item``, blocking while the channel is full.

        An item is enqueued immediately whenever there is room, even if the
        token already fired; cancellation only interrupts a blocked send.
        """
        if self.closed:
            raise ChannelClosedError("send on closed channel")
        try:
            self._queue.put_nowait(item)
            return
        except queue.Full:
            pass

        while True:
            if token is not None:
                token.raise_if_cancelled()
            try:
                self._queue.put(item, timeout=POLL_INTERVAL_SECONDS)
                return
            except queue.Full:
                continue

    def receive(self, token: Optional[CancellationToken] = None) -> Any:
        """
        Return the next item, blocking until one arrives.

        Raises ``ImportCancelled`` if the token fires before an item is taken
        and ``ChannelClosedError`` once the channel is closed and drained.
        """
        while True:
            if token is not None:
                token.raise_if_cancelled()
            try:
                return self._queue.get(timeout=POLL_INTERVAL_SECONDS)
            except queue.Empty:
                # close() happens after the final put, so closed + empty means drained
                if self.closed and self._queue.empty():
                    raise ChannelClosedError("receive on closed channel")

    def __len__(self) -> int:
        return self._queue.qsize()
