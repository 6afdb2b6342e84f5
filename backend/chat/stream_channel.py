# status: complete

import queue
import threading
from typing import Any, Iterator, Optional

from utils.logger import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class ChannelClosed(Exception):
    """Raised by get() once the channel is closed and drained, or cancelled."""


class StreamChannel:
    """
    Ordered single-consumer channel between a producer thread and its reader.

    The producer put()s items and close()s when done. The consumer reads with
    get() or by iterating, and may cancel() to abort: after cancellation,
    pending items are dropped and further put() calls return False so the
    producer can stop early.
    """

    def __init__(self, name: str = "stream", maxsize: int = 0):
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._cancelled = threading.Event()
        self._drained = False

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def put(self, item: Any) -> bool:
        """Push an item. Returns False if the channel no longer accepts items."""
        if self._closed.is_set():
            return False
        self._queue.put(item)
        return True

    def close(self) -> None:
        """Producer side: no more items will follow."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put(_CLOSED)

    def cancel(self) -> None:
        """Consumer side: stop reading and tell the producer to stop writing."""
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        logger.debug(f"Channel '{self.name}' cancelled by consumer")
        self.close()

    def get(self, timeout: Optional[float] = None) -> Any:
        """
        Next item in order.

        Raises queue.Empty when nothing arrived within timeout, and
        ChannelClosed once the producer closed the channel and every earlier
        item was read, or immediately after cancel().
        """
        if self._drained or self._cancelled.is_set():
            raise ChannelClosed(self.name)
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._drained = True
            raise ChannelClosed(self.name)
        if self._cancelled.is_set():
            raise ChannelClosed(self.name)
        return item

    def __iter__(self) -> Iterator[Any]:
        while True:
            try:
                yield self.get()
            except ChannelClosed:
                return
