"""Integration tests against a real Azure blob container"""
import os
import random
import pytest
from blobblocks import blockstore_config
from blobblocks.blobblockstore import BlobBlockStore
from blobblocks.blockstore import create_block

pytestmark = pytest.mark.integration


@pytest.fixture(name="blob_store")
def init_blob_store():
    """Store under a random root of the container named by the environment."""
    location = os.environ.get(blockstore_config.ENV_BLOB_URI)
    sas_token = os.environ.get(blockstore_config.ENV_BLOB_SAS_TOKEN)
    if not location or not sas_token:
        pytest.skip(
            f"No {blockstore_config.ENV_BLOB_URI}/{blockstore_config.ENV_BLOB_SAS_TOKEN}"
            + " in environment"
        )
    root = f"testing/blocks/test-{random.randint(0, 999):03d}"
    store = BlobBlockStore.from_location(
        f"{location.split('?')[0]}?{sas_token.lstrip('?')}", {"root": root}
    )
    with store:
        yield store
        for block in list(store.list_blocks()):
            store.delete(block.id).result()


def test_store_lifecycle(blob_store):
    """Check put, get, list and delete against the blob service."""
    blocks = [create_block(f"integration block {i}") for i in range(4)]
    for block in blocks:
        assert blob_store.put(block).result().id == block.id
    assert blob_store.put(blocks[0]).result().size == blocks[0].size

    retrieved = blob_store.get(blocks[1].id).result()
    assert retrieved.read() == b"integration block 1"
    assert retrieved.read(12, 17) == b"block"

    hex_ids = sorted(block.id.hex() for block in blocks)
    assert [block.id.hex() for block in blob_store.list_blocks()] == hex_ids
    listed = blob_store.list_blocks(after=hex_ids[0], before=hex_ids[3])
    assert [block.id.hex() for block in listed] == hex_ids[1:3]

    assert blob_store.delete(blocks[2].id).result() is True
    assert blob_store.delete(blocks[2].id).result() is False
    assert blob_store.stat(blocks[2].id).result() is None
