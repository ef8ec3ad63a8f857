"""Core module for BlobBlockStore"""
import io
import inspect
import logging
import re
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from datetime import datetime, timezone
from urllib.parse import urlsplit, urlunsplit
from azure.core.credentials import AzureSasCredential
from azure.core.exceptions import (
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.storage.blob import BlobType, ContainerClient
from blobblocks import blockstore_config
from blobblocks.blockstore import Block, BlockStats, BlockStore
from blobblocks.blockstore_exceptions import (
    BlockStoreNotStarted,
    InvalidStoreLocation,
)
from blobblocks.blockstream import BlockStream, ChunkStream
from blobblocks.contentid import ContentId

HEX_PATTERN = re.compile(r"[0-9a-fA-F]+")


# Object names


def canonical_root(root):
    """Ensure a root path doesn't begin with a slash but does end with one. The
    container root ("/" or "") canonicalizes to an empty string.

    :param str root: Configured root path.

    :return: Prefix applied to every object name.
    :rtype: str
    """
    if root in ("/", ""):
        return ""
    path = root[1:] if root.startswith("/") else root
    if not path.endswith("/"):
        path = path + "/"
    return path


def id_to_path(root, block_id):
    """Object name of a block: the canonical root followed by the hex id."""
    return root + block_id.hex()


def path_to_id(name):
    """Parse the content identifier from the last segment of an object name.

    :param str name: Object name (ex. "blocks/1220abcd...").

    :return: ContentId, or None if the segment is not a hex content identifier.
    """
    segment = name.rsplit("/", 1)[-1]
    if not HEX_PATTERN.fullmatch(segment):
        return None
    try:
        return ContentId.parse(segment)
    except ValueError:
        return None


# Object metadata


class BlobStats(
    namedtuple("BlobStats", ["id", "size", "stored_at", "name", "source"])
):
    """Stats of a block blob along with where the blob lives. `name` and `source`
    (the blob's primary uri) stay inside the store; callers only see `stats()`."""

    def stats(self):
        return BlockStats(self.id, self.size, self.stored_at)


def blob_to_stats(properties, source=None):
    """Translate blob properties into block stats.

    :param BlobProperties properties: Properties of a blob (from a listing or a
        properties request).
    :param str source: Primary uri of the blob, if known.

    :return: BlobStats, or None if the blob name is not a block identifier.
    """
    block_id = path_to_id(properties.name)
    if block_id is None:
        return None
    stored_at = properties.last_modified or properties.creation_time
    if stored_at is None:
        stored_at = datetime.now(timezone.utc)
    return BlobStats(block_id, properties.size, stored_at, properties.name, source)


# Blob content


class BlobReader(object):
    """Reads the content of a block blob. Nothing is downloaded until a read
    method is called.

    :param BlobClient blob: Client bound to the block's blob.
    :param int size: Size of the blob content in bytes.
    :param str source: Primary uri of the blob.
    """

    def __init__(self, blob, size, source=None):
        self.blob = blob
        self.size = size
        self.source = source

    def read_all(self):
        logging.debug("BlobReader - read_all: Opening Azure blob: %s", self.blob.blob_name)
        downloader = self.blob.download_blob()
        return io.BufferedReader(ChunkStream(downloader.chunks()))

    def read_range(self, start, end):
        logging.debug(
            "BlobReader - read_range: Opening Azure blob %s byte range %s - %s",
            self.blob.blob_name,
            "start" if start is None else start,
            "end" if end is None else end,
        )
        offset = start or 0
        if end is not None:
            end = min(end, self.size)
        # The blob service rejects ranges starting at or past the end of the blob
        if offset >= self.size or (end is not None and end <= offset):
            return io.BytesIO(b"")
        if offset == 0 and end is None:
            return self.read_all()
        length = None if end is None else end - offset
        downloader = self.blob.download_blob(offset=offset, length=length)
        return io.BufferedReader(ChunkStream(downloader.chunks()))


def blob_to_block(blob, stats):
    """Construct a block backed by the given blob."""
    return Block(
        stats.id, stats.size, stats.stored_at, BlobReader(blob, stats.size, stats.source)
    )


# Block Store


class BlobBlockStore(BlockStore):
    """BlobBlockStore stores blocks as block blobs in an Azure blob storage
    container. Each block is written to a blob named by the hex encoding of its
    content identifier under a configurable root, so a container can be shared
    with other data: blobs whose names are not block identifiers are ignored.

    The container does not offer a ranged listing, so `list_blocks` walks the
    flat listing of the root in name order and applies the `after`/`before`
    window and the limit while iterating. Listing order is lexicographic by name,
    which matches the order of lowercase hex identifiers.

    Writes rely on content addressing rather than locking: a block is uploaded
    only if no blob exists under its name (`overwrite=False`), and a writer that
    loses that race returns the blob stored by the winner.

    :param str container_uri: Uri of the container
        (ex. "https://account.blob.core.windows.net/container").
    :param credentials: Credential passed to the container client (ex. an
        `AzureSasCredential`).
    :param dict properties: Optional store properties:
        - root (str): Path prefix for every block blob. Defaults to "/".
        - list_buffer_size (int): Blocks buffered by a listing stream.
        - max_workers (int): Size of the worker pool created at `start`.
        - executor (Executor): Externally owned pool to run operations on instead.
        Other properties are kept in `self.properties` untouched.
    :param callable container_factory: Opens the container client; called with
        the container uri and `credential`. Defaults to
        `ContainerClient.from_container_url`.
    """

    def __init__(
        self, container_uri, credentials, properties=None, container_factory=None
    ):
        if not isinstance(container_uri, str) or container_uri.strip() == "":
            exception_string = (
                "BlobBlockStore - init: container_uri must be a non-empty string."
                + f" container_uri: {container_uri}"
            )
            logging.error(exception_string)
            raise InvalidStoreLocation(exception_string)
        if credentials is None:
            exception_string = (
                f"BlobBlockStore - init: credentials must be supplied for {container_uri}."
            )
            logging.error(exception_string)
            raise InvalidStoreLocation(exception_string)

        properties = dict(properties or {})
        root = properties.get("root", blockstore_config.ROOT)
        if not isinstance(root, str):
            exception_string = f"BlobBlockStore - init: root must be a string. root: {root}"
            logging.error(exception_string)
            raise TypeError(exception_string)
        list_buffer_size = properties.get(
            "list_buffer_size", blockstore_config.LIST_BUFFER_SIZE
        )
        max_workers = properties.get("max_workers", blockstore_config.MAX_WORKERS)
        self._check_integer(list_buffer_size, "list_buffer_size")
        self._check_integer(max_workers, "max_workers")

        self.container_uri = container_uri
        self.credentials = credentials
        self.properties = properties
        self.root = canonical_root(root)
        self.list_buffer_size = list_buffer_size
        self.max_workers = max_workers
        self.container_factory = container_factory or ContainerClient.from_container_url
        self.container = None
        self.executor = properties.get("executor")
        self._owns_executor = False
        logging.debug(
            "BlobBlockStore - Initialized for container: %s, root: '%s'",
            container_uri,
            self.root,
        )

    @classmethod
    def from_location(cls, location, properties=None):
        """Build a store from a location of the form "blob://host/container?sas".
        The container is reached at "https://host/container" and the raw query
        string is used as the shared access signature.

        :param str location: Store location.
        :param dict properties: Optional store properties (see class docstring).

        :return: BlobBlockStore - An unstarted store.

        :raises InvalidStoreLocation: If the host, container path or signature is
            missing.
        """
        parts = urlsplit(location)
        # The query string is the signature, keep it out of logs
        redacted = f"{parts.scheme}://{parts.netloc}{parts.path}"
        if not parts.hostname or parts.path in ("", "/"):
            exception_string = (
                "BlobBlockStore - from_location: location must name a host and a"
                + f" container path. location: {redacted}"
            )
            logging.error(exception_string)
            raise InvalidStoreLocation(exception_string)
        if not parts.query:
            exception_string = (
                "BlobBlockStore - from_location: location is missing a shared access"
                + f" signature query string. location: {redacted}"
            )
            logging.error(exception_string)
            raise InvalidStoreLocation(exception_string)
        container_uri = urlunsplit(("https", parts.hostname, parts.path, "", ""))
        return cls(container_uri, AzureSasCredential(parts.query), properties)

    # Lifecycle

    def start(self):
        if self.container is None:
            logging.info(
                "BlobBlockStore - start: Connecting to Azure blob container: %s",
                self.container_uri,
            )
            self.container = self.container_factory(
                self.container_uri, credential=self.credentials
            )
            if self.executor is None:
                self.executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="blobblocks"
                )
                self._owns_executor = True
        return self

    def stop(self):
        if self.container is not None:
            logging.info(
                "BlobBlockStore - stop: Releasing Azure blob container: %s",
                self.container_uri,
            )
            self.container = None
            if self._owns_executor:
                self.executor.shutdown(wait=False)
                self.executor = None
                self._owns_executor = False
        return self

    # Public API / BlockStore Interface Methods

    def list_blocks(self, after=None, before=None, limit=None):
        container = self._get_container("list_blocks")
        after = self._check_cursor(after, "after")
        before = self._check_cursor(before, "before")
        if limit is not None:
            self._check_integer(limit, "limit", allow_zero=True)
        logging.debug(
            "BlobBlockStore - list_blocks: Request to list blocks after: %s, before: %s,"
            + " limit: %s",
            after,
            before,
            limit,
        )
        stream = BlockStream(self.list_buffer_size)
        self.executor.submit(
            self._run_listing, container, stream, after, before, limit
        )
        return stream

    def stat(self, block_id):
        container = self._get_container("stat")
        return self.executor.submit(self._stat, container, block_id)

    def get(self, block_id):
        container = self._get_container("get")
        return self.executor.submit(self._get, container, block_id)

    def put(self, block):
        container = self._get_container("put")
        return self.executor.submit(self._put, container, block)

    def delete(self, block_id):
        container = self._get_container("delete")
        return self.executor.submit(self._delete, container, block_id)

    # Operations run on the executor

    def _stat(self, container, block_id):
        blob = container.get_blob_client(id_to_path(self.root, block_id))
        stats = self._fetch_stats(blob)
        if stats is None:
            logging.debug("BlobBlockStore - stat: No block stored for id: %s", block_id)
            return None
        return stats.stats()

    def _get(self, container, block_id):
        blob = container.get_blob_client(id_to_path(self.root, block_id))
        stats = self._fetch_stats(blob)
        if stats is None:
            logging.debug("BlobBlockStore - get: No block stored for id: %s", block_id)
            return None
        return blob_to_block(blob, stats)

    def _put(self, container, block):
        path = id_to_path(self.root, block.id)
        blob = container.get_blob_client(path)
        stats = self._fetch_stats(blob)
        if stats is not None:
            logging.debug(
                "BlobBlockStore - put: Block already stored, skipping upload: %s", path
            )
            return blob_to_block(blob, stats)

        try:
            with closing(block.open()) as content:
                blob.upload_blob(content, length=block.size, overwrite=False)
        except ResourceExistsError:
            # Another writer stored the same content first
            stats = self._fetch_stats(blob)
            if stats is None:
                raise
            logging.debug(
                "BlobBlockStore - put: Block stored concurrently, using existing blob: %s",
                path,
            )
            return blob_to_block(blob, stats)

        logging.info("BlobBlockStore - put: Stored block: %s (%s bytes)", path, block.size)
        stats = BlobStats(
            block.id, block.size, datetime.now(timezone.utc), path, blob.url
        )
        return blob_to_block(blob, stats)

    def _delete(self, container, block_id):
        path = id_to_path(self.root, block_id)
        blob = container.get_blob_client(path)
        try:
            blob.delete_blob()
        except HttpResponseError as err:
            if isinstance(err, ResourceNotFoundError) or err.status_code == 404:
                logging.debug("BlobBlockStore - delete: No block stored at: %s", path)
                return False
            raise
        logging.info("BlobBlockStore - delete: Deleted block: %s", path)
        return True

    def _run_listing(self, container, stream, after, before, limit):
        """Producer loop of `list_blocks`: publish matching blocks to the stream
        until the listing is exhausted, the window or limit is reached, or the
        consumer closes the stream. Errors end the stream."""
        try:
            for stats in self._iter_blobs(container, after, before, limit):
                blob = container.get_blob_client(stats.name)
                block = blob_to_block(blob, stats._replace(source=blob.url))
                if not stream.put(block):
                    logging.debug(
                        "BlobBlockStore - list_blocks: Stream closed, ending listing."
                    )
                    return
            stream.finish()
        except Exception as err:
            logging.error(
                "BlobBlockStore - list_blocks: Failure listing blob container %s: %s",
                self.container_uri,
                err,
            )
            stream.fail(err)

    def _iter_blobs(self, container, after, before, limit):
        """Yield the stats of block blobs directly under the root that fall within
        the (after, before) window, at most `limit` of them."""
        remaining = limit
        if remaining is not None and remaining <= 0:
            return
        prefix_length = len(self.root)
        for properties in container.list_blobs(name_starts_with=self.root or None):
            hex_name = properties.name[prefix_length:]
            # Blobs in nested paths belong to other roots
            if "/" in hex_name:
                continue
            if properties.blob_type != BlobType.BLOCKBLOB:
                logging.debug(
                    "BlobBlockStore - list_blocks: Ignoring %s blob: %s",
                    properties.blob_type,
                    properties.name,
                )
                continue
            stats = blob_to_stats(properties)
            if stats is None:
                logging.debug(
                    "BlobBlockStore - list_blocks: Ignoring non-block blob: %s",
                    properties.name,
                )
                continue
            if after is not None and hex_name <= after:
                continue
            if before is not None and hex_name >= before:
                return
            yield stats
            if remaining is not None:
                remaining -= 1
                if remaining == 0:
                    return

    # Other Methods

    def _get_container(self, method):
        """Return the container client, raising if the store was not started."""
        container = self.container
        if container is None:
            exception_string = (
                f"BlobBlockStore - {method}: Store for {self.container_uri} has not"
                + " been started."
            )
            logging.error(exception_string)
            raise BlockStoreNotStarted(exception_string)
        return container

    @staticmethod
    def _fetch_stats(blob):
        """Fetch the stats of a blob, or None if it does not exist."""
        try:
            properties = blob.get_blob_properties()
        except ResourceNotFoundError:
            return None
        return blob_to_stats(properties, blob.url)

    @staticmethod
    def _check_cursor(cursor, arg):
        """Check that a listing cursor is a string and normalize it to lowercase.

        :param str cursor: Cursor to check.
        :param str arg: Name of the argument to check.
        """
        if cursor is None:
            return None
        if not isinstance(cursor, str):
            exception_string = (
                f"BlobBlockStore - list_blocks: {arg} must be a hex string."
                + f" {arg}: {cursor}. Arg Type: {type(cursor)}."
            )
            logging.error(exception_string)
            raise TypeError(exception_string)
        return cursor.lower()

    @staticmethod
    def _check_integer(value, arg, allow_zero=False):
        """Check whether a given argument is an integer greater than 0 (or at least 0
        when `allow_zero`); throw an exception if not.

        :param int value: Value to check.
        :param str arg: Name of the argument to check.
        """
        method = inspect.stack()[1].function
        if not isinstance(value, int) or isinstance(value, bool):
            exception_string = (
                f"BlobBlockStore - {method}: {arg} must be an integer."
                + f" {arg}: {value}. Arg Type: {type(value)}."
            )
            logging.error(exception_string)
            raise TypeError(exception_string)
        minimum = 0 if allow_zero else 1
        if value < minimum:
            exception_string = (
                f"BlobBlockStore - {method}: {arg} must be >= {minimum}. {arg}: {value}"
            )
            logging.error(exception_string)
            raise ValueError(exception_string)


def register_blob_store(registry):
    """Register the "blob" location scheme with a `BlockStoreRegistry`."""
    registry.register("blob", BlobBlockStore.from_location)
    return registry
