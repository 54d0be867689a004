"""Handoff channel and completion barrier between the reader and the writers."""
import queue
import threading
from typing import Iterator, Optional

POLL_INTERVAL = 0.1

_CLOSED = object()


class ChannelClosed(Exception):
    """Raised on send or close after the channel was closed."""


class ChannelAborted(Exception):
    """Raised on send once a writer has aborted the channel."""


class HandoffChannel:
    """Single-slot blocking handoff of records to a pool of consumers.

    send() blocks until the slot is free, so at most one record waits between
    the producer and the writers. close() is called once by the producer;
    every consumer then finishes iterating. abort() is called by a failing
    consumer and makes send() raise and iteration stop immediately.
    """

    def __init__(self, poll_interval: float = POLL_INTERVAL):
        self._slot: queue.Queue = queue.Queue(maxsize=1)
        self._closed = threading.Event()
        self._aborted = threading.Event()
        self._poll_interval = poll_interval

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def _put(self, item) -> None:
        while True:
            if self._aborted.is_set():
                raise ChannelAborted("channel aborted by a writer")
            try:
                self._slot.put(item, timeout=self._poll_interval)
                return
            except queue.Full:
                continue

    def send(self, record: str) -> None:
        if self._closed.is_set():
            raise ChannelClosed("send on closed channel")
        self._put(record)

    def close(self) -> None:
        if self._closed.is_set():
            raise ChannelClosed("channel already closed")
        self._closed.set()
        try:
            self._put(_CLOSED)
        except ChannelAborted:
            # Consumers of an aborted channel stop without the marker.
            return

    def abort(self) -> None:
        self._aborted.set()

    def __iter__(self) -> Iterator[str]:
        while True:
            try:
                item = self._slot.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._aborted.is_set():
                    return
                continue
            if item is _CLOSED:
                # Hand the marker on so the next consumer stops too.
                self._slot.put_nowait(_CLOSED)
                return
            if self._aborted.is_set():
                return
            yield item


class CompletionBarrier:
    """Counter that wait() blocks on until every started writer called done()."""

    def __init__(self):
        self._count = 0
        self._cond = threading.Condition()

    def add(self, n: int = 1) -> None:
        with self._cond:
            self._count += n

    def done(self) -> None:
        with self._cond:
            if self._count <= 0:
                raise ValueError("done() called more times than add()")
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)
