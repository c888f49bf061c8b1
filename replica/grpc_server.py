"""gRPC server implementation for the replica."""

import errno
import logging
from typing import AsyncIterator

import grpc
from grpc import aio

from common.constants import GRPC_MAX_MESSAGE_BYTES, REPLICA_SERVICE_NAME, STREAM_PIECE_SIZE_BYTES
from common.protocol import (
    BlobMetadata,
    BlobRequest,
    PingResponse,
    ReadBlobResponse,
    StatBlobResponse,
    WriteBlobRequest,
    WriteBlobResponse,
)
from replica.blob_storage import BlobStorage, BlobVerificationError

logger = logging.getLogger(__name__)


def _identity(value: bytes) -> bytes:
    return value


class ReplicaServicer:
    """
    gRPC service implementation for replica blob operations.
    """

    def __init__(self, storage: BlobStorage):
        self.storage = storage

    async def WriteBlob(
        self,
        request_iterator: AsyncIterator[bytes],
        context: grpc.aio.ServicerContext
    ) -> bytes:
        """
        Handle WriteBlob RPC (client streaming).
        Receives metadata followed by data pieces, verifies size and checksum,
        then publishes the blob atomically.

        Args:
            request_iterator: Stream of WriteBlobRequest messages (serialized)
            context: gRPC context

        Returns:
            Serialized WriteBlobResponse
        """
        metadata = None
        writer = None

        try:
            async for request_bytes in request_iterator:
                request = WriteBlobRequest.from_json(request_bytes)

                if request.metadata:
                    if writer is not None:
                        writer.abort()
                    metadata = request.metadata
                    writer = self.storage.begin_write(metadata.file_id)
                    logger.info(f"Receiving blob {metadata.file_id}, size={metadata.total_size}")

                if request.data:
                    if writer is None:
                        error_msg = "Data received before metadata in WriteBlob stream"
                        logger.error(error_msg)
                        return WriteBlobResponse(success=False, error_message=error_msg).to_json()
                    writer.write(request.data)

            if metadata is None:
                error_msg = "No metadata received in WriteBlob stream"
                logger.error(error_msg)
                return WriteBlobResponse(success=False, error_message=error_msg).to_json()

            writer.commit(metadata.total_size, metadata.checksum)
            writer = None

            logger.info(f"Successfully wrote blob {metadata.file_id}")
            return WriteBlobResponse(success=True).to_json()

        except BlobVerificationError as e:
            logger.error(str(e))
            return WriteBlobResponse(success=False, error_message=str(e)).to_json()
        except OSError as e:
            if e.errno == errno.ENOSPC:
                error_msg = f"Disk full: cannot write blob {metadata.file_id if metadata else ''}"
            else:
                error_msg = f"Error writing blob: {e}"
            logger.error(error_msg, exc_info=True)
            return WriteBlobResponse(success=False, error_message=error_msg).to_json()
        except ValueError as e:
            logger.error(f"Rejected blob write: {e}")
            return WriteBlobResponse(success=False, error_message=str(e)).to_json()
        finally:
            if writer is not None:
                writer.abort()

    async def ReadBlob(
        self,
        request_bytes: bytes,
        context: grpc.aio.ServicerContext
    ) -> AsyncIterator[bytes]:
        """
        Handle ReadBlob RPC (server streaming).
        Sends metadata followed by data pieces.
        """
        request = BlobRequest.from_json(request_bytes)
        file_id = request.file_id

        try:
            info = self.storage.stat(file_id)
        except ValueError as e:
            await context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))
            return

        if info is None:
            logger.warning(f"Blob {file_id} not found")
            await context.abort(grpc.StatusCode.NOT_FOUND, f"Blob {file_id} not found")
            return

        metadata = BlobMetadata(file_id=file_id, total_size=info.size, checksum=info.checksum)
        yield ReadBlobResponse(metadata=metadata).to_json()

        try:
            for piece in self.storage.read_streaming(file_id, STREAM_PIECE_SIZE_BYTES):
                yield ReadBlobResponse(data=piece).to_json()
        except FileNotFoundError:
            logger.error(f"Blob file vanished while streaming: {file_id}")
            await context.abort(grpc.StatusCode.NOT_FOUND, f"Blob file not found: {file_id}")
        except OSError as e:
            logger.error(f"Error reading blob {file_id}: {e}", exc_info=True)
            await context.abort(grpc.StatusCode.INTERNAL, f"Error reading blob: {e}")

        logger.info(f"Successfully streamed blob {file_id}")

    async def StatBlob(
        self,
        request_bytes: bytes,
        context: grpc.aio.ServicerContext
    ) -> bytes:
        request = BlobRequest.from_json(request_bytes)
        try:
            info = self.storage.stat(request.file_id)
        except ValueError as e:
            await context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))
            return b''

        if info is None:
            return StatBlobResponse(exists=False).to_json()
        return StatBlobResponse(exists=True, size=info.size, checksum=info.checksum).to_json()

    async def Ping(
        self,
        request_bytes: bytes,
        context: grpc.aio.ServicerContext
    ) -> bytes:
        return PingResponse(available=True).to_json()


def create_server(storage: BlobStorage) -> aio.Server:
    """
    Create and configure gRPC server.

    Args:
        storage: BlobStorage instance

    Returns:
        Configured gRPC server
    """
    server = aio.server(options=[
        ('grpc.max_receive_message_length', GRPC_MAX_MESSAGE_BYTES),
        ('grpc.max_send_message_length', GRPC_MAX_MESSAGE_BYTES),
    ])
    servicer = ReplicaServicer(storage)

    server.add_generic_rpc_handlers((
        grpc.method_handlers_generic_handler(
            REPLICA_SERVICE_NAME,
            {
                'WriteBlob': grpc.stream_unary_rpc_method_handler(
                    servicer.WriteBlob,
                    request_deserializer=_identity,
                    response_serializer=_identity,
                ),
                'ReadBlob': grpc.unary_stream_rpc_method_handler(
                    servicer.ReadBlob,
                    request_deserializer=_identity,
                    response_serializer=_identity,
                ),
                'StatBlob': grpc.unary_unary_rpc_method_handler(
                    servicer.StatBlob,
                    request_deserializer=_identity,
                    response_serializer=_identity,
                ),
                'Ping': grpc.unary_unary_rpc_method_handler(
                    servicer.Ping,
                    request_deserializer=_identity,
                    response_serializer=_identity,
                ),
            }
        ),
    ))

    return server
