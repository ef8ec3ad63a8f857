"""Streams used to hand block listings and block content to callers"""
import io
import logging
import queue
import threading
from blobblocks import blockstore_config


class BlockStream(object):
    """Bounded iterator of blocks fed by a producer running on another thread.

    The producer calls `put` for every block and finishes with either `finish` or
    `fail`. `put` blocks while the buffer is full, so a slow consumer holds the
    producer back instead of letting blocks pile up in memory. A consumer that is
    no longer interested calls `close`; the producer notices on its next `put` and
    stops listing.

    Iterating raises the producer's error (if any) once every block buffered before
    it has been consumed.

    :param int capacity: Maximum number of buffered blocks.
    :param float poll_interval: Seconds between checks for a closed stream while
        the producer is waiting for buffer space.
    """

    _END = object()

    def __init__(self, capacity=None, poll_interval=None):
        if capacity is None:
            capacity = blockstore_config.LIST_BUFFER_SIZE
        if poll_interval is None:
            poll_interval = blockstore_config.POLL_INTERVAL_SEC
        self._queue = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()
        self._done = False
        self.poll_interval = poll_interval

    # Producer side

    def put(self, item):
        """Add an item, waiting for buffer space.

        :return: False if the consumer closed the stream and the item was dropped.
        :rtype: bool
        """
        while not self._closed.is_set():
            try:
                self._queue.put(item, timeout=self.poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def finish(self):
        """Signal that no more items will be produced."""
        self.put(self._END)

    def fail(self, error):
        """End the stream with an error that the consumer will receive."""
        self.put(_Failure(error))

    @property
    def closed(self):
        return self._closed.is_set()

    # Consumer side

    def __iter__(self):
        return self

    def __next__(self):
        if self._done or self._closed.is_set():
            raise StopIteration
        item = self._queue.get()
        if item is self._END:
            self._done = True
            raise StopIteration
        if isinstance(item, _Failure):
            self._done = True
            raise item.error
        return item

    def close(self):
        """Stop consuming; buffered items are discarded and the producer halts."""
        self._closed.set()
        self._done = True
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        logging.debug("BlockStream - close: Stream closed by consumer.")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class _Failure(object):
    """Wraps a producer error so it can travel through the buffer."""

    __slots__ = ("error",)

    def __init__(self, error):
        self.error = error


class ChunkStream(io.RawIOBase):
    """Read-only file-like object over an iterator of byte chunks, such as the
    chunks of a blob download. Wrap it in `io.BufferedReader` for buffered reads.
    """

    def __init__(self, chunks):
        super().__init__()
        self._chunks = iter(chunks)
        self._pending = memoryview(b"")
        self._offset = 0

    def readable(self):
        return True

    def readinto(self, buffer):
        while self._offset >= len(self._pending):
            try:
                self._pending = memoryview(next(self._chunks))
            except StopIteration:
                return 0
            self._offset = 0
        size = min(len(buffer), len(self._pending) - self._offset)
        buffer[:size] = self._pending[self._offset : self._offset + size]
        self._offset += size
        return size
