"""Pytest overall configuration file for fixtures"""

import threading
from datetime import datetime, timezone
import pytest
from azure.core.exceptions import (
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.storage.blob import BlobType
from blobblocks.blobblockstore import BlobBlockStore
from blobblocks.blockstore import create_block


def pytest_addoption(parser):
    """Run integration tests only when a flag is set on pytest."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against a real blob container",
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests marked 'integration' unless --run-integration is given."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: test against a real container")


class FakeBlobProperties:
    """Subset of `azure.storage.blob.BlobProperties` read by the store."""

    def __init__(
        self,
        name,
        size,
        last_modified=None,
        creation_time=None,
        blob_type=BlobType.BLOCKBLOB,
    ):
        self.name = name
        self.size = size
        self.last_modified = last_modified
        self.creation_time = creation_time
        self.blob_type = blob_type


class FakeDownloader:
    """Stand-in for `StorageStreamDownloader`, yielding content in small chunks."""

    chunk_size = 4

    def __init__(self, content):
        self.content = content

    def chunks(self):
        for i in range(0, len(self.content), self.chunk_size):
            yield self.content[i : i + self.chunk_size]

    def readall(self):
        return self.content


class FakeBlobClient:
    """In-memory stand-in for `azure.storage.blob.BlobClient`."""

    def __init__(self, container, blob_name):
        self.container = container
        self.blob_name = blob_name
        self.url = f"{container.url}/{blob_name}"

    def get_blob_properties(self):
        with self.container.lock:
            entry = self.container.blobs.get(self.blob_name)
        if entry is None:
            raise ResourceNotFoundError(message=f"Blob not found: {self.blob_name}")
        return entry[1]

    def download_blob(self, offset=None, length=None):
        with self.container.lock:
            entry = self.container.blobs.get(self.blob_name)
        if entry is None:
            raise ResourceNotFoundError(message=f"Blob not found: {self.blob_name}")
        content = entry[0]
        if offset is not None and offset >= len(content):
            # The blob service rejects ranges that start at or past the end
            error = HttpResponseError(message="ErrorCode:InvalidRange")
            error.status_code = 416
            raise error
        start = offset or 0
        end = None if length is None else start + length
        return FakeDownloader(content[start:end])

    def upload_blob(self, data, length=None, overwrite=False):
        content = data.read() if hasattr(data, "read") else bytes(data)
        with self.container.lock:
            if not overwrite and self.blob_name in self.container.blobs:
                raise ResourceExistsError(message=f"Blob exists: {self.blob_name}")
            self.container.put_blob(self.blob_name, content)
            self.container.uploads += 1

    def delete_blob(self):
        if self.container.delete_error is not None:
            raise self.container.delete_error
        with self.container.lock:
            if self.blob_name not in self.container.blobs:
                raise ResourceNotFoundError(message=f"Blob not found: {self.blob_name}")
            del self.container.blobs[self.blob_name]


class FakeContainer:
    """In-memory stand-in for `azure.storage.blob.ContainerClient`. Blobs are listed
    in name order, like the blob service lists them."""

    def __init__(self, url="https://account.blob.core.windows.net/container"):
        self.url = url
        self.blobs = {}
        self.lock = threading.Lock()
        self.uploads = 0
        self.listed = 0
        self.list_error = None
        self.list_error_after = 0
        self.delete_error = None

    def put_blob(self, name, content, last_modified=None, creation_time=None, **kwargs):
        if last_modified is None and creation_time is None:
            last_modified = datetime.now(timezone.utc)
        properties = FakeBlobProperties(
            name, len(content), last_modified, creation_time, **kwargs
        )
        self.blobs[name] = (content, properties)

    def get_blob_client(self, blob):
        return FakeBlobClient(self, blob)

    def list_blobs(self, name_starts_with=None):
        with self.lock:
            names = sorted(self.blobs)
        yielded = 0
        for name in names:
            if name_starts_with and not name.startswith(name_starts_with):
                continue
            if self.list_error is not None and yielded >= self.list_error_after:
                raise self.list_error
            with self.lock:
                entry = self.blobs.get(name)
            if entry is None:
                continue
            self.listed += 1
            yielded += 1
            yield entry[1]


@pytest.fixture(name="container")
def init_container():
    """Empty in-memory container."""
    return FakeContainer()


@pytest.fixture(name="props")
def init_props():
    """Properties to initialize a BlobBlockStore."""
    properties = {
        "root": "testing/blocks",
        "list_buffer_size": 10,
        "max_workers": 4,
    }
    return properties


@pytest.fixture(name="make_store")
def init_make_store(container):
    """Factory for started stores sharing the same fake container."""
    stores = []

    def make_store(properties=None):
        store = BlobBlockStore(
            container.url,
            "sas-token",
            properties,
            container_factory=lambda uri, credential: container,
        )
        stores.append(store)
        return store.start()

    yield make_store
    for store in stores:
        store.stop()


@pytest.fixture(name="store")
def init_store(make_store, props):
    """Create a started BlobBlockStore for all tests."""
    return make_store(props)


@pytest.fixture(name="blocks")
def init_blocks():
    """Blocks of test content, keyed by their content."""
    contents = [
        "foo bar baz",
        "The quick brown fox jumps over the lazy dog",
        "a" * 1024,
        "content-addressable",
        "",
    ]
    return {content: create_block(content) for content in contents}
