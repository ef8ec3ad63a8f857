"""BlobBlocks Command Line App"""
import logging
import os
import sys
from argparse import ArgumentParser
import yaml
from blobblocks import blockstore_config
from blobblocks.blobblockstore import register_blob_store
from blobblocks.blockstore import BlockStoreRegistry, create_block
from blobblocks.contentid import ContentId


class BlockStoreParser:
    """Class to set up parsing arguments via argparse."""

    def __init__(self):
        """Initialize the argparse 'parser'."""

        program_name = "BlobBlocks Command Line Client"
        description = (
            "Command line tool to list, stat, get, put and delete blocks in an Azure"
            + " blob container."
        )
        epilog = (
            "The location may also be given through the"
            + f" {blockstore_config.ENV_BLOB_URI} environment variable, and the shared"
            + f" access signature through {blockstore_config.ENV_BLOB_SAS_TOKEN}."
        )

        self.parser = ArgumentParser(
            prog=program_name,
            description=description,
            epilog=epilog,
        )

        # Add positional argument
        self.parser.add_argument(
            "location",
            nargs="?",
            default=os.environ.get(blockstore_config.ENV_BLOB_URI),
            help="Store location (ex. blob://account.blob.core.windows.net/container?sv=...)",
        )

        # Add optional arguments
        self.parser.add_argument(
            "-root",
            dest="root",
            help="Root path of the blocks within the container",
        )
        self.parser.add_argument(
            "-config",
            dest="config_path",
            help=f"Path to a store properties file ({blockstore_config.STORE_CONFIG_YAML})",
        )
        self.parser.add_argument(
            "-loglevel",
            dest="logging_level",
            default="WARNING",
            help="Set logging level for the client",
        )

        # Block API related arguments
        self.parser.add_argument(
            "-id",
            dest="block_id",
            help="Hex identifier of the block to work with",
        )
        self.parser.add_argument(
            "-path",
            dest="block_path",
            help="Path of a file to read block content from or write it to",
        )
        self.parser.add_argument(
            "-algo",
            dest="block_algorithm",
            default=blockstore_config.DEFAULT_ALGORITHM,
            help="Algorithm used to identify a block when putting it",
        )
        self.parser.add_argument(
            "-after",
            dest="list_after",
            help="Only list blocks with hex ids after this cursor",
        )
        self.parser.add_argument(
            "-before",
            dest="list_before",
            help="Only list blocks with hex ids before this cursor",
        )
        self.parser.add_argument(
            "-limit",
            dest="list_limit",
            type=int,
            help="Maximum number of blocks to list",
        )

        # Flags to call BlockStore methods
        self.parser.add_argument(
            "-list",
            dest="client_list",
            action="store_true",
            help="Flag to list blocks",
        )
        self.parser.add_argument(
            "-stat",
            dest="client_stat",
            action="store_true",
            help="Flag to print the stats of a block",
        )
        self.parser.add_argument(
            "-get",
            dest="client_get",
            action="store_true",
            help="Flag to retrieve the content of a block",
        )
        self.parser.add_argument(
            "-put",
            dest="client_put",
            action="store_true",
            help="Flag to store a file as a block",
        )
        self.parser.add_argument(
            "-delete",
            dest="client_delete",
            action="store_true",
            help="Flag to delete a block",
        )

    @staticmethod
    def load_store_properties(config_yaml):
        """Get and return the store properties found in a yaml file.

        Args:
            config_yaml (str): Path to the properties file

        Returns:
            store_properties (dict): Properties with the recognised keys
            ("root", "list_buffer_size", "max_workers").
        """
        if not os.path.exists(config_yaml):
            exception_string = (
                f"BlockStoreParser - load_store_properties: {config_yaml} not found."
            )
            logging.critical(exception_string)
            raise FileNotFoundError(exception_string)
        with open(config_yaml, "r", encoding="utf-8") as file:
            yaml_data = yaml.safe_load(file) or {}

        store_properties = {}
        for key in ("root", "list_buffer_size", "max_workers"):
            if key not in yaml_data:
                continue
            checked_property = yaml_data[key]
            if key in ("list_buffer_size", "max_workers"):
                checked_property = int(yaml_data[key])
            store_properties[key] = checked_property
        return store_properties

    def get_parser_args(self, argv=None):
        """Get command line arguments"""
        return self.parser.parse_args(argv)


class BlockStoreClient:
    """Use a BlockStore through the command line."""

    def __init__(self, store):
        """Initialize the client with a started store.

        Args:
            store (BlockStore): Store to work with
        """
        self.blockstore = store
        logging.info("BlockStoreClient - BlockStore initialized.")

    def list_blocks(self, after=None, before=None, limit=None, out=None):
        """Print one line per listed block: hex id, size and stored time."""
        out = out or sys.stdout
        count = 0
        with self.blockstore.list_blocks(after, before, limit) as blocks:
            for block in blocks:
                out.write(
                    f"{block.id.hex()}\t{block.size}\t{block.stored_at.isoformat()}\n"
                )
                count += 1
        logging.info("BlockStoreClient - list_blocks: Listed %s blocks.", count)
        return count

    def stat_block(self, block_id):
        stats = self.blockstore.stat(ContentId.parse(block_id)).result()
        if stats is None:
            print(f"Block not found: {block_id}")
        else:
            print(f"Block id: {stats.id.hex()}")
            print(f"Size: {stats.size}")
            print(f"Stored at: {stats.stored_at.isoformat()}")
        return stats

    def get_block(self, block_id, path=None):
        """Write the content of a block to `path`, or to stdout if no path is given."""
        block = self.blockstore.get(ContentId.parse(block_id)).result()
        if block is None:
            print(f"Block not found: {block_id}")
            return None
        content = block.read()
        if path is None:
            sys.stdout.buffer.write(content)
        else:
            with open(path, "wb") as file:
                file.write(content)
        return block

    def put_block(self, path, algorithm=None):
        """Store the content of the file at `path` as a block."""
        with open(path, "rb") as file:
            block = create_block(file.read(), algorithm)
        stored = self.blockstore.put(block).result()
        print(f"Stored block: {stored.id.hex()} ({stored.size} bytes)")
        return stored

    def delete_block(self, block_id):
        deleted = self.blockstore.delete(ContentId.parse(block_id)).result()
        if deleted:
            print(f"Block: {block_id} has been deleted.")
        else:
            print(f"Block not found: {block_id}")
        return deleted


def build_registry():
    """Registry of the store schemes the client can open."""
    registry = BlockStoreRegistry()
    register_blob_store(registry)
    return registry


def main(argv=None):
    """Entry point of the command line client."""
    parser = BlockStoreParser()
    args = parser.get_parser_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.logging_level).upper(), logging.WARNING),
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    location = getattr(args, "location")
    if location is None:
        parser.parser.error(
            f"A store location or {blockstore_config.ENV_BLOB_URI} is required."
        )
    sas_token = os.environ.get(blockstore_config.ENV_BLOB_SAS_TOKEN)
    if "?" not in location and sas_token:
        location = f"{location}?{sas_token.lstrip('?')}"

    properties = {}
    if getattr(args, "config_path") is not None:
        properties = parser.load_store_properties(getattr(args, "config_path"))
    if getattr(args, "root") is not None:
        properties["root"] = getattr(args, "root")

    store = build_registry().initialize(location, properties)
    with store:
        bs = BlockStoreClient(store)
        block_id = getattr(args, "block_id")
        if getattr(args, "client_list"):
            bs.list_blocks(
                getattr(args, "list_after"),
                getattr(args, "list_before"),
                getattr(args, "list_limit"),
            )
        elif getattr(args, "client_stat") and block_id is not None:
            bs.stat_block(block_id)
        elif getattr(args, "client_get") and block_id is not None:
            bs.get_block(block_id, getattr(args, "block_path"))
        elif getattr(args, "client_put") and getattr(args, "block_path") is not None:
            bs.put_block(getattr(args, "block_path"), getattr(args, "block_algorithm"))
        elif getattr(args, "client_delete") and block_id is not None:
            bs.delete_block(block_id)
        else:
            parser.parser.error(
                "One of -list, -stat -id, -get -id, -put -path or -delete -id is required."
            )


if __name__ == "__main__":
    main()
