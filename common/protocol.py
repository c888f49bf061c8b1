"""Replica RPC message definitions (JSON over gRPC generic handlers)."""

import base64
import json
from dataclasses import dataclass
from typing import Optional

from common.constants import REPLICA_SERVICE_NAME


def method_path(method: str) -> str:
    """Full gRPC method path on the replica service."""
    return f'/{REPLICA_SERVICE_NAME}/{method}'


@dataclass
class BlobMetadata:
    """Header of a blob transfer."""
    file_id: str
    total_size: int
    checksum: str

    def to_dict(self) -> dict:
        return {'file_id': self.file_id, 'total_size': self.total_size, 'checksum': self.checksum}


@dataclass
class WriteBlobRequest:
    """One message of the WriteBlob client stream: metadata first, then data pieces."""
    metadata: Optional[BlobMetadata] = None
    data: Optional[bytes] = None

    def to_json(self) -> bytes:
        obj = {}
        if self.metadata:
            obj['metadata'] = self.metadata.to_dict()
        if self.data is not None:
            obj['data'] = base64.b64encode(self.data).decode('ascii')
        return json.dumps(obj).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'WriteBlobRequest':
        obj = json.loads(data)
        metadata = BlobMetadata(**obj['metadata']) if 'metadata' in obj else None
        piece = base64.b64decode(obj['data']) if 'data' in obj else None
        return cls(metadata=metadata, data=piece)


@dataclass
class WriteBlobResponse:
    success: bool
    error_message: Optional[str] = None

    def to_json(self) -> bytes:
        return json.dumps({
            'success': self.success,
            'error_message': self.error_message
        }).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'WriteBlobResponse':
        obj = json.loads(data)
        return cls(success=obj['success'], error_message=obj.get('error_message'))


@dataclass
class BlobRequest:
    """Request naming a single blob (ReadBlob, StatBlob)."""
    file_id: str

    def to_json(self) -> bytes:
        return json.dumps({'file_id': self.file_id}).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'BlobRequest':
        return cls(file_id=json.loads(data)['file_id'])


@dataclass
class ReadBlobResponse:
    """One message of the ReadBlob server stream."""
    metadata: Optional[BlobMetadata] = None
    data: Optional[bytes] = None

    def to_json(self) -> bytes:
        obj = {}
        if self.metadata:
            obj['metadata'] = self.metadata.to_dict()
        if self.data is not None:
            obj['data'] = base64.b64encode(self.data).decode('ascii')
        return json.dumps(obj).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'ReadBlobResponse':
        obj = json.loads(data)
        metadata = BlobMetadata(**obj['metadata']) if 'metadata' in obj else None
        piece = base64.b64decode(obj['data']) if 'data' in obj else None
        return cls(metadata=metadata, data=piece)


@dataclass
class StatBlobResponse:
    exists: bool
    size: Optional[int] = None
    checksum: Optional[str] = None

    def to_json(self) -> bytes:
        return json.dumps({
            'exists': self.exists,
            'size': self.size,
            'checksum': self.checksum
        }).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'StatBlobResponse':
        obj = json.loads(data)
        return cls(exists=obj['exists'], size=obj.get('size'), checksum=obj.get('checksum'))


@dataclass
class PingRequest:
    def to_json(self) -> bytes:
        return b'{}'

    @classmethod
    def from_json(cls, data: bytes) -> 'PingRequest':
        return cls()


@dataclass
class PingResponse:
    available: bool

    def to_json(self) -> bytes:
        return json.dumps({'available': self.available}).encode('utf-8')

    @classmethod
    def from_json(cls, data: bytes) -> 'PingResponse':
        return cls(available=json.loads(data)['available'])
