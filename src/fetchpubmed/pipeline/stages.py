"""
Threaded pipeline stages connected by bounded queues.

``run_stage`` moves the iteration of a source onto its own thread. Items are
handed to the consumer through a queue of fixed capacity, so a slow consumer
blocks the producer instead of letting it buffer without limit. Errors raised
by the producer are re-raised in the consumer, and a consumer that stops
early cancels the producer at its next hand-off.
"""

import logging
import queue
import threading
from typing import Iterable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds between cancellation checks while blocked on a full/empty queue
POLL_INTERVAL = 0.1


class _Done:
    pass


class _Failed:
    def __init__(self, error: BaseException):
        self.error = error


class StageCancelled(Exception):
    """
    Raised inside a producer thread when its consumer has gone away.
    """


class BoundedChannel:
    """
    A queue with a cancellation flag shared by one producer and one consumer.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=capacity)
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def put(self, item: object) -> None:
        """
        Block until ``item`` fits in the queue.

        Raises:
            StageCancelled: If the consumer cancelled the channel.
        """
        while True:
            if self._cancelled.is_set():
                raise StageCancelled()
            try:
                self._queue.put(item, timeout=POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def get(self) -> object:
        return self._queue.get()


def run_stage(source: Iterable[T], capacity: int, name: str) -> Iterator[T]:
    """
    Iterate ``source`` on a worker thread and yield its items here.

    Args:
        source: Iterable consumed entirely on the worker thread.
        capacity: Maximum number of items in flight between the threads.
        name: Thread name, used in diagnostics.

    Raises:
        Whatever ``source`` raises, re-raised on the consuming side.
    """
    channel = BoundedChannel(capacity)

    def produce() -> None:
        iterator = iter(source)
        try:
            for item in iterator:
                channel.put(item)
            channel.put(_Done())
        except StageCancelled:
            logger.debug("Stage %s cancelled by consumer", name)
        except BaseException as e:
            try:
                channel.put(_Failed(e))
            except StageCancelled:
                logger.debug("Stage %s failed after cancellation: %s", name, e)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

    worker = threading.Thread(target=produce, name=name, daemon=True)
    worker.start()
    try:
        while True:
            item = channel.get()
            if isinstance(item, _Done):
                return
            if isinstance(item, _Failed):
                raise item.error
            yield item
    finally:
        channel.cancel()
        worker.join()
