"""gRPC client for the replica server, used as the remote tier."""

from typing import AsyncIterator, Iterable, Optional

import grpc

from common.constants import (
    GRPC_KEEPALIVE_TIME_MS,
    GRPC_KEEPALIVE_TIMEOUT_MS,
    GRPC_MAX_MESSAGE_BYTES,
    REPLICA_PING_TIMEOUT_SECONDS,
)
from common.logging_config import get_logger
from common.protocol import (
    BlobMetadata,
    BlobRequest,
    PingRequest,
    PingResponse,
    ReadBlobResponse,
    StatBlobResponse,
    WriteBlobRequest,
    WriteBlobResponse,
    method_path,
)
from vault import config
from vault.exceptions import (
    ChecksumMismatchError,
    NotFoundError,
    RemoteRejectedError,
    RemoteUnreachableError,
    TransferTimeoutError,
)
from vault.storage.remote_tier import RemoteTier

logger = get_logger(__name__)


def _identity(value: bytes) -> bytes:
    return value


def translate_rpc_error(e: grpc.RpcError, action: str):
    """Map a gRPC status to the vault transfer error taxonomy."""
    code = e.code()
    details = e.details()
    if code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return TransferTimeoutError(f"Replica timed out during {action}: {details}")
    if code == grpc.StatusCode.UNAVAILABLE:
        return RemoteUnreachableError(f"Replica unavailable during {action}: {details}")
    if code == grpc.StatusCode.NOT_FOUND:
        return NotFoundError(f"Replica reports not found during {action}: {details}")
    return RemoteRejectedError(f"Replica error during {action} ({code.name}): {details}")


class GrpcRemoteTier(RemoteTier):
    """
    Remote tier backed by a replica server.
    Handles connection management and RPC calls.
    """

    def __init__(self, target: Optional[str] = None, timeout: Optional[float] = None):
        self._target = target or config.REPLICA_TARGET
        self._timeout = timeout if timeout is not None else config.SYNC_TRANSFER_TIMEOUT_SECONDS
        self._channel = None

    def _ensure_channel(self):
        if self._channel is None:
            options = [
                ('grpc.keepalive_time_ms', GRPC_KEEPALIVE_TIME_MS),
                ('grpc.keepalive_timeout_ms', GRPC_KEEPALIVE_TIMEOUT_MS),
                ('grpc.keepalive_permit_without_calls', 1),
                ('grpc.max_receive_message_length', GRPC_MAX_MESSAGE_BYTES),
                ('grpc.max_send_message_length', GRPC_MAX_MESSAGE_BYTES),
            ]
            self._channel = grpc.aio.insecure_channel(self._target, options=options)
            logger.info(f"Established gRPC channel to {self._target}")
        return self._channel

    async def close(self) -> None:
        if self._channel:
            await self._channel.close()
            self._channel = None

    async def write(self, file_id: str, pieces: Iterable[bytes], size: int, checksum: str) -> None:
        """
        Stream a blob to the replica. The replica verifies size and checksum
        before committing it.

        Raises:
            TransferTimeoutError: If the RPC deadline expires
            RemoteUnreachableError: If the replica cannot be reached
            ChecksumMismatchError: If the replica computed a different digest
            RemoteRejectedError: If the replica refused the write
        """
        channel = self._ensure_channel()

        async def request_generator():
            metadata = BlobMetadata(file_id=file_id, total_size=size, checksum=checksum)
            yield WriteBlobRequest(metadata=metadata).to_json()
            for piece in pieces:
                yield WriteBlobRequest(data=piece).to_json()

        multi_callable = channel.stream_unary(
            method_path('WriteBlob'),
            request_serializer=_identity,
            response_deserializer=_identity,
        )

        try:
            response_bytes = await multi_callable(request_generator(), timeout=self._timeout)
        except grpc.RpcError as e:
            raise translate_rpc_error(e, f"write of {file_id}") from e

        response = WriteBlobResponse.from_json(response_bytes)
        if not response.success:
            message = response.error_message or "unknown error"
            if 'checksum' in message.lower():
                raise ChecksumMismatchError(f"Replica checksum verification failed: {message}")
            raise RemoteRejectedError(f"Replica rejected {file_id}: {message}")

        logger.info(f"Replica stored {file_id} ({size} bytes)")

    async def read(self, file_id: str) -> AsyncIterator[bytes]:
        channel = self._ensure_channel()
        multi_callable = channel.unary_stream(
            method_path('ReadBlob'),
            request_serializer=_identity,
            response_deserializer=_identity,
        )

        try:
            async for response_bytes in multi_callable(BlobRequest(file_id=file_id).to_json(), timeout=self._timeout):
                response = ReadBlobResponse.from_json(response_bytes)
                if response.metadata:
                    logger.debug(f"Reading {file_id} from replica, size={response.metadata.total_size}")
                if response.data:
                    yield response.data
        except grpc.RpcError as e:
            raise translate_rpc_error(e, f"read of {file_id}") from e

    async def stat(self, file_id: str) -> StatBlobResponse:
        channel = self._ensure_channel()
        multi_callable = channel.unary_unary(
            method_path('StatBlob'),
            request_serializer=_identity,
            response_deserializer=_identity,
        )
        try:
            response_bytes = await multi_callable(
                BlobRequest(file_id=file_id).to_json(),
                timeout=REPLICA_PING_TIMEOUT_SECONDS
            )
        except grpc.RpcError as e:
            raise translate_rpc_error(e, f"stat of {file_id}") from e
        return StatBlobResponse.from_json(response_bytes)

    async def exists(self, file_id: str) -> bool:
        try:
            return (await self.stat(file_id)).exists
        except (RemoteUnreachableError, TransferTimeoutError) as e:
            logger.warning(f"Replica stat failed for {file_id}: {e}")
            return False

    async def ping(self) -> bool:
        channel = self._ensure_channel()
        multi_callable = channel.unary_unary(
            method_path('Ping'),
            request_serializer=_identity,
            response_deserializer=_identity,
        )
        try:
            response_bytes = await multi_callable(PingRequest().to_json(), timeout=REPLICA_PING_TIMEOUT_SECONDS)
            return PingResponse.from_json(response_bytes).available
        except grpc.RpcError as e:
            logger.warning(f"Replica ping failed: {e.details()}")
            return False
