"""Project-wide constants (stream sizes, default ports, paths)."""

import os

STREAM_PIECE_SIZE_BYTES: int = 64 * 1024  # 64 KiB per streamed piece
SPOOL_MAX_MEMORY_BYTES: int = 1024 * 1024  # spill uploads to disk above 1 MiB

REPLICA_SERVICE_NAME: str = "replica.ReplicaService"
REPLICA_PORT: int = int(os.environ.get("REPLICA_PORT", "50051"))
DEFAULT_REPLICA_STORAGE_PATH: str = "/app/data/replica"

REPLICA_PING_TIMEOUT_SECONDS: float = 5.0
GRPC_KEEPALIVE_TIME_MS: int = 30000
GRPC_KEEPALIVE_TIMEOUT_MS: int = 10000
GRPC_MAX_MESSAGE_BYTES: int = 4 * 1024 * 1024
