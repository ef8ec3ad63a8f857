"""BlobBlocks is a content-addressable block store that keeps its blocks in an
Azure blob storage container.

Some properties:

- Blocks are immutable and never change
- Blocks are named using the hex encoding of their content identifier (a
    self-describing hash of their contents), so storing a block twice is a no-op
- Blocks live under a configurable root path in the container; other blobs
    sharing the container are ignored
- Every operation is asynchronous: single-block operations return futures and
    listings return a bounded stream of blocks
"""

from blobblocks.blockstore import (
    Block,
    BlockStats,
    BlockStore,
    BlockStoreRegistry,
    create_block,
)
from blobblocks.contentid import ContentId

__all__ = (
    "Block",
    "BlockStats",
    "BlockStore",
    "BlockStoreRegistry",
    "ContentId",
    "create_block",
)
__version__ = "0.1.0"
