"""Default configuration variables for BlobBlockStore"""
# Default root prefix when no 'root' property is provided (the container root)
ROOT = "/"
# Number of blocks buffered by a listing stream before the producer waits
LIST_BUFFER_SIZE = 1000
# Worker threads for a store that is not given an executor
MAX_WORKERS = 8
# Seconds a blocked listing producer waits before checking if its stream was closed
POLL_INTERVAL_SEC = 0.1
# Algorithm used when creating blocks from raw content
DEFAULT_ALGORITHM = "sha256"
# Name of the optional properties file read by the client
STORE_CONFIG_YAML = "blockstore.yaml"
# Environment variables read by the client and the integration tests
ENV_BLOB_URI = "BLOCKS_BLOB_URI"
ENV_BLOB_SAS_TOKEN = "BLOCKS_BLOB_SAS_TOKEN"
