"""Entry point for the replica service.
Serves the remote tier: stores replicated blobs and streams them back.
"""

import asyncio
import signal
import sys

from common.constants import REPLICA_PORT
from common.logging_config import setup_logging
from replica.blob_storage import BlobStorage
from replica.grpc_server import create_server

logger = setup_logging('replica')


async def serve(storage: BlobStorage) -> None:
    """
    Start and run gRPC server.

    Args:
        storage: Initialized BlobStorage instance
    """
    server = create_server(storage)
    listen_addr = f'[::]:{REPLICA_PORT}'
    server.add_insecure_port(listen_addr)

    logger.info(f"Starting replica on {listen_addr} (storage: {storage.root})")
    await server.start()

    async def shutdown(sig=None):
        if sig:
            logger.info(f"Received signal {sig}, shutting down...")
        else:
            logger.info("Shutting down...")
        await server.stop(5)
        logger.info("Replica stopped")

    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown(s)))

    try:
        await server.wait_for_termination()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        await shutdown()


def main() -> None:
    """Bootstrap replica service."""
    logger.info("Initializing replica...")

    storage = BlobStorage()
    storage.ensure_directory()

    try:
        asyncio.run(serve(storage))
    except KeyboardInterrupt:
        logger.info("Replica shutdown complete")


if __name__ == "__main__":
    main()
