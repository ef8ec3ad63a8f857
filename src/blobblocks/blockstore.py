"""BlockStore Interface"""
from abc import ABC, abstractmethod
from collections import namedtuple
from contextlib import closing
from datetime import datetime, timezone
import importlib.metadata
import io
import logging
from urllib.parse import urlsplit
from blobblocks import blockstore_config
from blobblocks.blockstore_exceptions import UnsupportedStoreScheme
from blobblocks.contentid import ContentId


class BlockStore(ABC):
    """BlockStore is a content-addressable store of immutable blocks. Every block is
    addressed by the content identifier (hash) of its bytes, so storing the same
    content twice is never a conflict.

    Every operation is asynchronous: `stat`, `get`, `put` and `delete` return a
    `concurrent.futures.Future` and `list_blocks` returns a `BlockStream`."""

    @staticmethod
    def version():
        """Return the version number"""
        __version__ = importlib.metadata.version("blobblocks")
        return __version__

    @abstractmethod
    def start(self):
        """Open the store's backend resources. Calling `start` on a started store
        does nothing.

        :return: The started store.
        """
        raise NotImplementedError()

    @abstractmethod
    def stop(self):
        """Release the store's backend resources. Calling `stop` on a stopped store
        does nothing.

        :return: The stopped store.
        """
        raise NotImplementedError()

    @abstractmethod
    def list_blocks(self, after=None, before=None, limit=None):
        """Enumerate stored blocks in ascending order of their hex identifiers. Only
        blocks whose hex id is strictly greater than `after` and strictly less than
        `before` are produced, and no more than `limit` of them.

        :param str after: Hex id cursor; blocks at or before it are skipped.
        :param str before: Hex id cursor; listing ends at the first block at or
            after it.
        :param int limit: Maximum number of blocks to produce.

        :return: BlockStream - Iterator of `Block` objects. A backend failure is
            raised from the iterator, not from this call.
        """
        raise NotImplementedError()

    @abstractmethod
    def stat(self, block_id):
        """Look up the metadata of a stored block.

        :param ContentId block_id: Identifier of the block.

        :return: Future - Resolves to `BlockStats`, or None if the block is not stored.
        """
        raise NotImplementedError()

    @abstractmethod
    def get(self, block_id):
        """Retrieve a stored block. Content is not read until the block is opened.

        :param ContentId block_id: Identifier of the block.

        :return: Future - Resolves to `Block`, or None if the block is not stored.
        """
        raise NotImplementedError()

    @abstractmethod
    def put(self, block):
        """Store a block. If a block with the same identifier is already stored the
        content is not written again and the stored block is returned instead.

        :param Block block: Block to store.

        :return: Future - Resolves to the stored `Block`.
        """
        raise NotImplementedError()

    @abstractmethod
    def delete(self, block_id):
        """Remove a stored block.

        :param ContentId block_id: Identifier of the block.

        :return: Future - Resolves to True if the block was deleted, False if it was
            not stored.
        """
        raise NotImplementedError()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_value, traceback):
        self.stop()


class BlockStats(namedtuple("BlockStats", ["id", "size", "stored_at"])):
    """Point-in-time metadata of a stored block.

    :param ContentId id: Content identifier of the block.
    :param int size: Size of the block content in bytes.
    :param datetime stored_at: When the block was stored.
    """


class Block(object):
    """An immutable sequence of bytes with its content identifier. The content is
    read lazily through `reader`, an object with `read_all()` and
    `read_range(start, end)` methods returning binary file-like objects.

    The store does not verify that `id` matches the content; callers that need
    that guarantee hash the content themselves.
    """

    def __init__(self, block_id, size, stored_at, reader):
        self.id = block_id
        self.size = size
        self.stored_at = stored_at
        self.reader = reader

    def open(self, start=None, end=None):
        """Open the block content for reading. Caller is responsible for closing
        the stream.

        :param int start: Offset of the first byte to read (defaults to 0).
        :param int end: Offset after the last byte to read (defaults to the end
            of the content).

        :return: Readable binary stream.
        """
        if start is None and end is None:
            return self.reader.read_all()
        if start is not None and start < 0:
            raise ValueError(f"Block - open: start must be >= 0, start: {start}")
        if end is not None and end < 0:
            raise ValueError(f"Block - open: end must be >= 0, end: {end}")
        if end is not None and start is not None and end < start:
            raise ValueError(
                f"Block - open: end ({end}) must not precede start ({start})"
            )
        return self.reader.read_range(start, end)

    def read(self, start=None, end=None):
        """Read and return the block content (or a byte range of it)."""
        with closing(self.open(start, end)) as stream:
            return stream.read()

    def stats(self):
        return BlockStats(self.id, self.size, self.stored_at)

    def __repr__(self):
        return (
            f"Block(id={self.id.hex()}, size={self.size},"
            + f" stored_at={self.stored_at.isoformat()})"
        )


class BytesReader(object):
    """Content reader for a block held in memory."""

    def __init__(self, content):
        self.content = content

    def read_all(self):
        return io.BytesIO(self.content)

    def read_range(self, start, end):
        return io.BytesIO(self.content[start or 0 : end])


def create_block(content, algorithm=None):
    """Create an in-memory block from raw content, computing its identifier.

    :param mixed content: Bytes, or a string which is encoded as utf-8.
    :param str algorithm: Hash algorithm for the identifier (defaults to sha256).

    :return: Block - The new block.
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    if algorithm is None:
        algorithm = blockstore_config.DEFAULT_ALGORITHM
    block_id = ContentId.compute(content, algorithm)
    return Block(
        block_id, len(content), datetime.now(timezone.utc), BytesReader(content)
    )


class BlockStoreRegistry:
    """A registry of `BlockStore` constructors keyed by location scheme.

    Stores are registered explicitly by whatever builds the application (ex. the
    command line client calls `register_blob_store`); importing a store module
    never registers it.
    """

    def __init__(self):
        self._initializers = {}

    def register(self, scheme, initializer):
        """Register a callable that builds a `BlockStore` from a location string.

        :param str scheme: Location scheme (ex. "blob").
        :param callable initializer: Called with the full location string and a
            properties dict (or None).
        """
        logging.debug("BlockStoreRegistry - register: Registering scheme: %s", scheme)
        self._initializers[scheme.lower()] = initializer

    def schemes(self):
        return sorted(self._initializers)

    def initialize(self, location, properties=None):
        """Build a `BlockStore` for a location such as
        "blob://account.blob.core.windows.net/container?sv=...".

        :param str location: Store location.
        :param dict properties: Store properties passed to the initializer.

        :return: BlockStore - An unstarted store for the location.

        :raises UnsupportedStoreScheme: If no initializer is registered for the
            location's scheme.
        """
        scheme = urlsplit(location).scheme.lower()
        initializer = self._initializers.get(scheme)
        if initializer is None:
            exception_string = (
                "BlockStoreRegistry - initialize: No store registered for scheme"
                + f" '{scheme}'. Registered schemes: {self.schemes()}"
            )
            logging.error(exception_string)
            raise UnsupportedStoreScheme(exception_string)
        return initializer(location, properties)
